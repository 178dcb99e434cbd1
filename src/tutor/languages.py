"""Supported editor languages and their starter lessons."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from src.tutor.errors import NotFoundError


@dataclass(frozen=True)
class Language:
    id: str
    name: str
    extension: str
    description: str
    default_code: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StarterLesson:
    id: str
    title: str
    level: str
    description: str
    code: str
    objectives: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


SUPPORTED_LANGUAGES: list[Language] = [
    Language(
        id="javascript",
        name="JavaScript",
        extension=".js",
        description="Dynamic programming language for the web and general development",
        default_code="""// Welcome to JavaScript!
console.log("Hello, world!");

// Variables
let name = "Student";
const age = 25;

// Function
function greet(name) {
    return `Hello, ${name}!`;
}

console.log(greet(name));""",
    ),
    Language(
        id="python",
        name="Python",
        extension=".py",
        description="Simple and powerful programming language, ideal for beginners",
        default_code="""# Welcome to Python!
print("Hello, world!")

# Variables
name = "Student"
age = 25

# Function
def greet(name):
    return f"Hello, {name}!"

print(greet(name))

# List
fruits = ["apple", "banana", "orange"]
for fruit in fruits:
    print(f"I like {fruit}")""",
    ),
    Language(
        id="typescript",
        name="TypeScript",
        extension=".ts",
        description="JavaScript with static types for safer development",
        default_code="""// Welcome to TypeScript!
interface Person {
    name: string;
    age: number;
}

const student: Person = {
    name: "Student",
    age: 25
};

function greet(person: Person): string {
    return `Hello, ${person.name}! You are ${person.age} years old.`;
}

console.log(greet(student));""",
    ),
    Language(
        id="java",
        name="Java",
        extension=".java",
        description="Robust object-oriented language for enterprise development",
        default_code="""// Welcome to Java!
public class HelloWorld {
    public static void main(String[] args) {
        System.out.println("Hello, world!");

        // Variables
        String name = "Student";
        int age = 25;

        greet(name, age);
    }

    public static void greet(String name, int age) {
        System.out.println("Hello, " + name + "! You are " + age + " years old.");
    }
}""",
    ),
    Language(
        id="csharp",
        name="C#",
        extension=".cs",
        description="Microsoft language for .NET application development",
        default_code="""// Welcome to C#!
using System;

class Program
{
    static void Main()
    {
        Console.WriteLine("Hello, world!");

        // Variables
        string name = "Student";
        int age = 25;

        Greet(name, age);
    }

    static void Greet(string name, int age)
    {
        Console.WriteLine($"Hello, {name}! You are {age} years old.");
    }
}""",
    ),
    Language(
        id="cpp",
        name="C++",
        extension=".cpp",
        description="High-performance language for systems and games",
        default_code="""// Welcome to C++!
#include <iostream>
#include <string>

void greet(const std::string& name, int age) {
    std::cout << "Hello, " << name << "! You are " << age << " years old." << std::endl;
}

int main() {
    std::cout << "Hello, world!" << std::endl;

    // Variables
    std::string name = "Student";
    int age = 25;

    greet(name, age);

    return 0;
}""",
    ),
]

_STARTER_LESSONS: dict[str, list[StarterLesson]] = {
    "javascript": [
        StarterLesson(
            id="js-basics",
            title="JavaScript Fundamentals",
            level="beginner",
            description="Variables, data types and basic operators",
            code='// Variables in JavaScript\nlet name = "John";\nconst age = 30;\nvar active = true;\n\nconsole.log(name, age, active);',
            objectives=["Understand variables", "Know the data types", "Use console.log"],
        ),
        StarterLesson(
            id="js-functions",
            title="Functions in JavaScript",
            level="intermediate",
            description="Create and use functions",
            code="// Functions in JavaScript\nfunction add(a, b) {\n    return a + b;\n}\n\nconst result = add(5, 3);\nconsole.log(result);",
            objectives=["Create functions", "Use parameters", "Return values"],
        ),
    ],
    "python": [
        StarterLesson(
            id="py-basics",
            title="Python Fundamentals",
            level="beginner",
            description="Variables and data types in Python",
            code='# Variables in Python\nname = "John"\nage = 30\nactive = True\n\nprint(name, age, active)',
            objectives=["Understand variables", "Know the data types", "Use print()"],
        ),
    ],
}


def list_languages() -> list[Language]:
    return list(SUPPORTED_LANGUAGES)


def get_language(language_id: str) -> Language:
    """
    Look up a supported language by id (case-insensitive).

    Raises:
        NotFoundError: if the language is not supported
    """
    wanted = language_id.lower()
    for language in SUPPORTED_LANGUAGES:
        if language.id == wanted:
            return language
    raise NotFoundError(f"Unsupported language: {language_id}")


def lessons_for_language(language_id: str) -> list[StarterLesson]:
    return list(_STARTER_LESSONS.get(language_id.lower(), []))
