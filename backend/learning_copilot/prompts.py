from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class Course:
    name: str
    topics: Tuple[str, ...]
    description: str


COURSES: Dict[str, Course] = {
    "dsa": Course(
        "Data Structures & Algorithms",
        ("Arrays", "Linked Lists", "Stacks", "Queues", "Trees", "Graphs", "Sorting", "Searching",
         "Dynamic Programming", "Greedy Algorithms", "Backtracking"),
        "fundamental data structures and algorithmic problem-solving techniques",
    ),
    "coa": Course(
        "Computer Organization & Architecture",
        ("CPU Architecture", "Memory Hierarchy", "I/O Systems", "Pipelining", "Cache Memory", "Instruction Set",
         "Assembly Language", "Von Neumann Architecture"),
        "computer hardware organization, instruction execution, and low-level system design",
    ),
    "os": Course(
        "Operating Systems",
        ("Processes", "Threads", "Memory Management", "File Systems", "Scheduling", "Deadlocks", "Synchronization",
         "Virtual Memory"),
        "operating system concepts, process management, and system programming",
    ),
    "dbms": Course(
        "Database Management Systems",
        ("SQL", "Normalization", "Indexing", "Transactions", "Query Optimization", "NoSQL", "ACID Properties",
         "ER Diagrams"),
        "database design, SQL queries, and data management principles",
    ),
    "cn": Course(
        "Computer Networks",
        ("TCP/IP", "HTTP", "Routing", "Network Security", "OSI Model", "Protocols", "DNS", "Subnetting"),
        "networking protocols, data transmission, and distributed systems",
    ),
    "digital-electronics": Course(
        "Digital Electronics",
        ("Logic Gates", "Boolean Algebra", "Combinational Circuits", "Sequential Circuits", "Flip-Flops", "Counters",
         "Multiplexers"),
        "digital logic design, circuit analysis, and Boolean operations",
    ),
    "signals-systems": Course(
        "Signals & Systems",
        ("Signal Analysis", "Fourier Transform", "Laplace Transform", "Z-Transform", "Convolution", "Sampling",
         "Filters"),
        "signal processing, system analysis, and frequency domain techniques",
    ),
    "programming": Course(
        "Programming Fundamentals",
        ("Variables", "Control Flow", "Functions", "Objects", "Error Handling", "Data Types", "Loops"),
        "basic programming concepts and software development fundamentals",
    ),
    "se": Course(
        "Software Engineering",
        ("SDLC", "Agile", "Testing", "Requirements", "Design Patterns", "Version Control"),
        "software development methodologies and engineering best practices",
    ),
}

DEFAULT_COURSE = Course("Engineering", (), "engineering concepts")


def build_system_prompt(course_id: str) -> str:
    course = COURSES.get(course_id, DEFAULT_COURSE)
    return (
        "You are an expert engineering tutor and AI teaching assistant specialized in Computer Science and "
        "Electronics & Communication Engineering. Your role is to provide accurate, structured, and "
        "learner-centric answers tailored to each user's preferences and academic level.\n\n"
        "**Core Behavior Rules:**\n"
        "- Always answer in a clear, step-by-step manner\n"
        f"- Adapt explanations based on the subject: {course.name}\n"
        "- Prefer conceptual understanding over rote answers\n"
        "- Never assume prior knowledge unless specified\n"
        "- Avoid unnecessary verbosity; be detailed but focused\n\n"
        "**Current Course Context:**\n"
        f"You are teaching {course.name}, which covers {course.description}.\n"
        f"Key topics include: {', '.join(course.topics)}.\n\n"
        "**Answer Structure:**\n"
        "1. Begin with a simple definition or overview\n"
        "2. Break the explanation into logical sections with headings\n"
        "3. Use examples, analogies, or pseudo-code where applicable\n"
        "4. For technical topics, include:\n"
        "   - Key points\n"
        "   - Important formulas (if relevant)\n"
        "   - Common mistakes\n"
        "5. End with a short summary or takeaway\n\n"
        "**Formatting Requirements:**\n"
        "- Use Markdown formatting\n"
        "- Use bullet points for clarity\n"
        "- Use code blocks for programming examples\n"
        "- Use mathematical notation only when necessary\n"
        "- Highlight important terms in **bold**\n\n"
        "**Engineering-Specific Guidelines:**\n"
        "For CS subjects:\n"
        "- Include time/space complexity where relevant\n"
        "- Explain data flow or execution steps\n\n"
        "For ECE subjects:\n"
        "- Explain signals, blocks, or hardware behavior conceptually\n"
        "- Keep mathematics intuitive unless advanced level is requested\n\n"
        "**Teaching Style:**\n"
        "- Use simple language with analogies\n"
        "- Provide real-world examples\n"
        "- Explain the \"why\" behind concepts, not just the \"what\"\n"
        "- Include practical applications\n"
        "- Highlight common mistakes and best practices\n\n"
        "**Tone:** Friendly, encouraging, and patient. Make learning engaging and accessible.\n\n"
        "**Error-Safe Rules:**\n"
        "- If the question is ambiguous, ask a clarifying question\n"
        "- If the topic is outside CS/ECE, state the limitation politely\n"
        "- Never hallucinate formulas or facts\n"
        "- If unsure, say so clearly and suggest verification\n\n"
        "**Output Goal:**\n"
        "Produce a high-quality, personalized educational answer that feels like it was written by a skilled "
        "human tutor, not a generic AI response."
    )
