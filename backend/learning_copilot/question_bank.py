from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import InvalidQuestion


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


DIFFICULTY_ORDER: List[Difficulty] = [Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD]


def clamp_difficulty(index: int) -> Difficulty:
    return DIFFICULTY_ORDER[max(0, min(len(DIFFICULTY_ORDER) - 1, index))]


def step_difficulty(difficulty: Difficulty, steps: int) -> Difficulty:
    return clamp_difficulty(DIFFICULTY_ORDER.index(Difficulty(difficulty)) + steps)


def fallback_difficulties(difficulty: Difficulty) -> List[Difficulty]:
    """Alternates to probe when `difficulty` has nothing left: -1, +1, -2, +2 (clamped)."""
    return [step_difficulty(difficulty, s) for s in (-1, 1, -2, 2)]


@dataclass(frozen=True)
class QuizQuestion:
    id: str
    topic_key: str
    difficulty: Difficulty
    question: str
    options: Tuple[str, ...]
    correct_index: int
    explanation: str

    def __post_init__(self) -> None:
        if len(self.options) != 4:
            raise InvalidQuestion(f"{self.id}: exactly 4 options are required")
        if len(set(self.options)) != 4:
            raise InvalidQuestion(f"{self.id}: options must be distinct")
        if not 0 <= self.correct_index < len(self.options):
            raise InvalidQuestion(f"{self.id}: correct_index out of range")

    def to_public(self, topic: str) -> Dict[str, Any]:
        # no correctIndex / explanation until the question is answered
        return {
            "id": self.id,
            "topic": topic,
            "difficulty": self.difficulty.value,
            "question": self.question,
            "options": list(self.options),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "topic_key": self.topic_key,
            "difficulty": self.difficulty.value,
            "question": self.question,
            "options": list(self.options),
            "correct_index": self.correct_index,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuizQuestion":
        return cls(
            id=data["id"],
            topic_key=data["topic_key"],
            difficulty=Difficulty(data["difficulty"]),
            question=data["question"],
            options=tuple(data["options"]),
            correct_index=int(data["correct_index"]),
            explanation=data.get("explanation", ""),
        )


class QuestionBank:
    """Topic + difficulty index over a fixed set of questions."""

    def __init__(self, questions: Iterable[QuizQuestion]) -> None:
        self._by_id: Dict[str, QuizQuestion] = {}
        self._index: Dict[Tuple[str, Difficulty], List[QuizQuestion]] = {}
        for q in questions:
            if q.id in self._by_id:
                raise InvalidQuestion(f"duplicate question id {q.id}")
            self._by_id[q.id] = q
            self._index.setdefault((q.topic_key, q.difficulty), []).append(q)

    def get(self, question_id: str) -> Optional[QuizQuestion]:
        return self._by_id.get(question_id)

    def questions_for(self, topic_key: str, difficulty: Difficulty) -> List[QuizQuestion]:
        return list(self._index.get((topic_key, Difficulty(difficulty)), []))

    def topics(self) -> List[str]:
        return sorted({k[0] for k in self._index})

    def __len__(self) -> int:
        return len(self._by_id)


def _q(qid: str, topic_key: str, difficulty: str, question: str, options: Sequence[str], correct: int, explanation: str) -> QuizQuestion:
    return QuizQuestion(qid, topic_key, Difficulty(difficulty), question, tuple(options), correct, explanation)


STATIC_QUESTIONS: List[QuizQuestion] = [
    # Arrays
    _q("arrays-e-1", "arrays", "easy", "What is the time complexity of accessing an element in an array by index?",
       ["O(n)", "O(1)", "O(log n)", "O(n²)"], 1, "Arrays provide constant time O(1) access using direct indexing."),
    _q("arrays-e-2", "arrays", "easy", "Array indices in most programming languages start at:",
       ["0", "1", "-1", "Any value"], 0, "Zero-based indexing is the convention in C, Java, Python and most languages."),
    _q("arrays-e-3", "arrays", "easy", "Which property do all elements of a static array share?",
       ["Same value", "Same type and contiguous storage", "Random memory locations", "Unlimited size"], 1,
       "A static array stores elements of one type in a contiguous block of memory."),
    _q("arrays-m-1", "arrays", "medium", "Time complexity of inserting an element at the beginning of an array?",
       ["O(1)", "O(n)", "O(log n)", "O(n log n)"], 1, "Inserting at the beginning requires shifting existing elements → O(n)."),
    _q("arrays-h-1", "arrays", "hard", "In dynamic arrays, what typically happens when capacity is exceeded?",
       ["Elements are lost", "Array resizes (often doubles)", "Program crashes", "Elements are compressed"], 1,
       "Dynamic arrays usually grow (commonly doubling) to keep amortized append near O(1)."),

    # Trees
    _q("trees-e-1", "trees", "easy", "What is a leaf node in a tree?",
       ["Root node", "Node with children", "Node with no children", "Any internal node"], 2, "A leaf node has no children."),
    _q("trees-m-1", "trees", "medium", "Time complexity of search in a balanced Binary Search Tree (BST)?",
       ["O(n)", "O(log n)", "O(n²)", "O(1)"], 1, "Balanced BST height is O(log n), so search is O(log n)."),
    _q("trees-h-1", "trees", "hard", "What does an AVL tree maintain to stay balanced?",
       ["Complete balance", "Height difference ≤ 1", "Perfect balance", "Equal subtree node counts"], 1,
       "AVL trees enforce balance factors in {-1,0,1} (height diff ≤ 1)."),

    # Graphs
    _q("graphs-e-1", "graphs", "easy", "In graph theory, what is a vertex?",
       ["Edge", "Node", "Path", "Cycle"], 1, "Vertices are the nodes of the graph."),
    _q("graphs-m-1", "graphs", "medium", "Which graph representation uses O(V²) space?",
       ["Adjacency List", "Adjacency Matrix", "Edge List", "Incidence List"], 1, "Adjacency matrices store a V×V table → O(V²)."),
    _q("graphs-h-1", "graphs", "hard", "Using a binary heap, the time complexity of Dijkstra’s algorithm is:",
       ["O(V)", "O(E log V)", "O(V²)", "O(E)"], 1,
       "With a heap, the dominant operations are extract-min/decrease-key → O(E log V)."),

    # Linked lists
    _q("ll-e-1", "linked-lists", "easy", "What does a linked list node contain?",
       ["Only data", "Only pointer", "Data and pointer", "Multiple pointers"], 2,
       "A basic node contains data and a pointer to the next node."),
    _q("ll-m-1", "linked-lists", "medium", "Time complexity of accessing the nth element in a linked list?",
       ["O(1)", "O(n)", "O(log n)", "O(n²)"], 1, "Must traverse from the head node, requiring O(n) time in the worst case."),
    _q("ll-h-1", "linked-lists", "hard", "Space complexity of reversing a linked list iteratively?",
       ["O(1)", "O(n)", "O(log n)", "O(n²)"], 0,
       "Iterative reversal uses only a few pointer variables, achieving O(1) space complexity."),

    # Sorting
    _q("sort-e-1", "sorting", "easy", "Which sort is stable?",
       ["Quick Sort", "Heap Sort", "Merge Sort", "Selection Sort"], 2,
       "Merge Sort maintains relative order of equal elements, making it stable."),
    _q("sort-m-1", "sorting", "medium", "Which sort uses divide and conquer?",
       ["Bubble Sort", "Quick Sort", "Insertion Sort", "Selection Sort"], 1,
       "Quick Sort divides array around a pivot and recursively sorts subarrays."),
    _q("sort-h-1", "sorting", "hard", "Best case time complexity of Quick Sort?",
       ["O(n)", "O(n log n)", "O(n²)", "O(log n)"], 1,
       "When pivot divides array equally, Quick Sort achieves O(n log n) in best case."),

    # Dynamic programming
    _q("dp-e-1", "dynamic-programming", "easy", "What does DP stand for?",
       ["Data Processing", "Dynamic Programming", "Direct Path", "Data Points"], 1,
       "DP stands for Dynamic Programming, a method for solving complex problems."),
    _q("dp-m-1", "dynamic-programming", "medium", "What is memoization?",
       ["Memory allocation", "Storing computed results", "Variable naming", "Code optimization"], 1,
       "Memoization stores results of expensive function calls to avoid recomputation."),
    _q("dp-h-1", "dynamic-programming", "hard", "What is the knapsack problem?",
       ["Sorting items", "Resource allocation", "Path finding", "String matching"], 1,
       "0/1 Knapsack is a resource allocation problem solved with DP."),

    # Digital electronics
    _q("dig-e-1", "digital-electronics", "easy", "What does an AND gate output?",
       ["1 only if both inputs are 1", "1 if any input is 1", "Always 1", "Always 0"], 0,
       "AND outputs 1 only when both inputs are 1."),
    _q("dig-m-1", "digital-electronics", "medium", "What is a flip-flop primarily used for?",
       ["Amplification", "Memory storage", "Signal filtering", "Oscillation"], 1,
       "Flip-flops are bistable elements used to store 1 bit of state."),
    _q("dig-h-1", "digital-electronics", "hard", "A Karnaugh map is used for:",
       ["Drawing circuits", "Logic simplification", "Power calculation", "Timing analysis only"], 1,
       "K-maps simplify Boolean expressions to minimal SOP/POS forms."),

    # Signals & systems
    _q("sig-e-1", "signals-&-systems", "easy", "What is a signal?",
       ["Noise", "Information function", "Frequency", "Amplitude"], 1,
       "A signal is a function that carries information, varying with time or space."),
    _q("sig-m-1", "signals-&-systems", "medium", "What does Fourier transform do?",
       ["Time to frequency", "Frequency to time", "Amplitude scaling", "Phase shifting"], 0,
       "Fourier transform converts signals from time domain to frequency domain."),
    _q("sig-h-1", "signals-&-systems", "hard", "What is sampling theorem?",
       ["Signal storage", "Frequency limit", "Nyquist rate", "Both B and C"], 3,
       "Sampling theorem states sampling frequency must be at least twice signal bandwidth (Nyquist rate)."),

    # Communication systems
    _q("comm-e-1", "communication-systems", "easy", "What is modulation?",
       ["Signal mixing", "Carrier variation", "Noise addition", "Signal filtering"], 1,
       "Modulation varies a carrier signal property (amplitude, frequency, phase) with message."),
    _q("comm-m-1", "communication-systems", "medium", "What is bandwidth?",
       ["Signal strength", "Frequency range", "Power consumption", "Distance covered"], 1,
       "Bandwidth is the range of frequencies occupied by a signal."),
    _q("comm-h-1", "communication-systems", "hard", "What is Shannon capacity?",
       ["Channel speed", "Maximum data rate", "Signal power", "Noise level"], 1,
       "Shannon capacity formula gives maximum error-free data transmission rate."),

    # Control systems
    _q("ctrl-e-1", "control-systems", "easy", "What is feedback in control systems?",
       ["Forward path", "Output to input", "Input amplification", "Error correction"], 1,
       "Feedback feeds output signal back to input for comparison and correction."),
    _q("ctrl-m-1", "control-systems", "medium", "What is transfer function?",
       ["Input function", "Output/Input ratio", "Error function", "Control function"], 1,
       "Transfer function is Laplace transform of output over input for LTI systems."),
    _q("ctrl-h-1", "control-systems", "hard", "What does PID stand for?",
       ["Proportional Integral Derivative", "Primary Input Device", "Process Identification Data", "Parameter Input Delay"], 0,
       "PID controller uses Proportional, Integral, and Derivative terms for control."),

    # Microprocessors
    _q("micro-e-1", "microprocessors", "easy", "What is a microprocessor?",
       ["Memory chip", "CPU on chip", "Storage device", "Input device"], 1,
       "Microprocessor is a CPU implemented on a single integrated circuit chip."),
    _q("micro-m-1", "microprocessors", "medium", "What is pipelining?",
       ["Parallel processing", "Sequential execution", "Memory access", "I/O operation"], 0,
       "Pipelining allows simultaneous execution of multiple instructions in different stages."),
    _q("micro-h-1", "microprocessors", "hard", "What is cache memory?",
       ["Main memory", "Fast buffer memory", "Secondary storage", "Register file"], 1,
       "Cache is high-speed memory that stores frequently accessed data and instructions."),
]


def default_question_bank() -> QuestionBank:
    return QuestionBank(STATIC_QUESTIONS)
