"""
Error Explanation Rules Module

Contains the ordered message patterns used to explain failures, per language.
Each rule is (regex, category, summary, explanation, suggestion, concepts);
the first rule whose regex matches the lowercased message wins.
"""

# Categories of errors
SYNTAX_ERROR = "syntax_error"
TYPE_MISMATCH = "type_mismatch"
NOT_FOUND = "not_found"
BORROW_CHECKER = "borrow_checker"
RUNTIME_ERROR = "runtime_error"
TIMEOUT = "timeout"
MEMORY_EXCEEDED = "memory_exceeded"
UNKNOWN = "unknown"

CATEGORIES = (
    SYNTAX_ERROR, TYPE_MISMATCH, NOT_FOUND, BORROW_CHECKER,
    RUNTIME_ERROR, TIMEOUT, MEMORY_EXCEEDED, UNKNOWN,
)

PYTHON_RULES = [
    (
        r"indentationerror|taberror|unexpected indent|expected an indented block",
        SYNTAX_ERROR,
        "Indentation error",
        "Python uses indentation to define code blocks. Your indentation is inconsistent.",
        "Use consistent indentation (4 spaces recommended). Don't mix tabs and spaces.",
        ["Code Blocks", "Syntax"],
    ),
    (
        r"syntaxerror",
        SYNTAX_ERROR,
        "Syntax error",
        "Python could not parse your program, so none of it ran.",
        "Look at the reported line and the one before it for a missing colon, bracket or quote.",
        ["Syntax"],
    ),
    (
        r"nameerror",
        NOT_FOUND,
        "Name not defined",
        "You're using a variable or function that hasn't been defined yet.",
        "Check for typos. Make sure the variable is defined before you use it.",
        ["Variables", "Scope"],
    ),
    (
        r"modulenotfounderror|importerror",
        NOT_FOUND,
        "Import failed",
        "The module you tried to import is not available here.",
        "Only the standard library can be imported. Check the module name for typos.",
        ["Modules", "Imports"],
    ),
    (
        r"attributeerror",
        NOT_FOUND,
        "Attribute not found",
        "The object does not have the attribute or method you asked for.",
        "Check the spelling and the type of the object; print type(x) if unsure.",
        ["Objects", "Methods"],
    ),
    (
        r"typeerror",
        TYPE_MISMATCH,
        "Type error",
        "An operation was applied to an object of inappropriate type.",
        "Check the types of your variables. You may need to convert between types.",
        ["Types", "Type Conversion"],
    ),
    (
        r"valueerror",
        RUNTIME_ERROR,
        "Invalid value",
        "A function received an argument of the right type but an unusable value.",
        "Check the input you convert, e.g. int() only accepts text that looks like a number.",
        ["Input Parsing", "Type Conversion"],
    ),
    (
        r"indexerror",
        RUNTIME_ERROR,
        "Index out of range",
        "You tried to access a list index that doesn't exist.",
        "Check len() before accessing. Remember Python uses 0-based indexing.",
        ["Lists", "Indexing"],
    ),
    (
        r"keyerror",
        RUNTIME_ERROR,
        "Key not found",
        "The dictionary key you're looking for doesn't exist.",
        "Use .get() method which returns None for missing keys, or check with 'in' operator first.",
        ["Dictionaries", "Keys"],
    ),
    (
        r"zerodivisionerror",
        RUNTIME_ERROR,
        "Division by zero",
        "You attempted to divide a number by zero.",
        "Add a check before division to ensure the divisor is not zero.",
        ["Arithmetic", "Error Handling"],
    ),
    (
        r"recursionerror",
        RUNTIME_ERROR,
        "Recursion too deep",
        "Your function called itself too many times without reaching a base case.",
        "Make sure every recursive call moves toward a base case that returns without recursing.",
        ["Recursion", "Base Case"],
    ),
    (
        r"eoferror",
        RUNTIME_ERROR,
        "Read past end of input",
        "Your program called input() more times than there are input lines.",
        "Read exactly as many lines as the task provides.",
        ["Input", "Standard Input"],
    ),
    (
        r"permissionerror",
        RUNTIME_ERROR,
        "Operation not allowed",
        "Your program tried to use files, processes or the network, which the sandbox forbids.",
        "Read from standard input and write to standard output only.",
        ["Standard Input", "Standard Output"],
    ),
]

RUST_RULES = [
    (
        r"cannot borrow|borrow of moved value|use of moved value|does not live long enough",
        BORROW_CHECKER,
        "Borrow checker error",
        "Rust's borrow checker prevents data races by ensuring references follow ownership rules.",
        "Consider using .clone() to create an owned copy, or restructure your code to avoid overlapping borrows.",
        ["Ownership", "Borrowing", "Lifetimes"],
    ),
    (
        r"mismatched types|type mismatch|expected .* found",
        TYPE_MISMATCH,
        "Type mismatch error",
        "The types don't match what the function or operation expects.",
        "Check the function signature and ensure you're passing the correct types. You may need type conversion.",
        ["Type System", "Type Inference"],
    ),
    (
        r"cannot find|not found in this scope|unresolved import",
        NOT_FOUND,
        "Item not found",
        "The compiler cannot find the variable, function, or type you're referencing.",
        "Check for typos in the name. Ensure the item is in scope or properly imported.",
        ["Scope", "Modules", "use statements"],
    ),
    (
        r"expected one of|unexpected token|unclosed delimiter|this file contains an unclosed",
        SYNTAX_ERROR,
        "Syntax error",
        "The compiler could not parse your program.",
        "Check for a missing semicolon, brace or parenthesis near the reported line.",
        ["Syntax"],
    ),
    (
        r"overflow",
        RUNTIME_ERROR,
        "Arithmetic overflow",
        "The calculation resulted in a value too large or too small for the data type.",
        "Consider using checked arithmetic methods like checked_add() or a larger integer type.",
        ["Integer Types", "Overflow"],
    ),
    (
        r"index out of bounds",
        RUNTIME_ERROR,
        "Index out of bounds",
        "You tried to access an element at an index that doesn't exist in the collection.",
        "Check the length of the collection before accessing. Consider using .get() which returns Option.",
        ["Arrays", "Vectors", "Option"],
    ),
    (
        r"unwrap\(\)|called `option::unwrap\(\)` on a `none`|called `result::unwrap\(\)` on an `err`",
        RUNTIME_ERROR,
        "Unwrap on None/Err",
        "Called unwrap() on a None or Err value, which causes a panic.",
        "Use pattern matching, if let, or ? operator instead of unwrap() for proper error handling.",
        ["Option", "Result", "Error Handling"],
    ),
    (
        r"divide by zero|division by zero",
        RUNTIME_ERROR,
        "Division by zero",
        "You attempted to divide a number by zero.",
        "Check the divisor before dividing, or use checked_div().",
        ["Arithmetic", "Error Handling"],
    ),
]

JAVASCRIPT_RULES = [
    (
        r"syntaxerror",
        SYNTAX_ERROR,
        "Syntax error",
        "JavaScript could not parse your program.",
        "Check for unbalanced braces, parentheses or quotes near the reported line.",
        ["Syntax"],
    ),
    (
        r"referenceerror|is not defined",
        NOT_FOUND,
        "Reference error",
        "You're using a variable or function that hasn't been declared.",
        "Declare the variable with let or const before using it, and check for typos.",
        ["Variables", "Scope", "Hoisting"],
    ),
    (
        r"cannot read propert|of undefined|of null",
        RUNTIME_ERROR,
        "Property of undefined",
        "You accessed a property on a value that is undefined or null.",
        "Check that the object exists before using it, or use optional chaining (?.).",
        ["Objects", "undefined", "null"],
    ),
    (
        r"typeerror|is not a function",
        TYPE_MISMATCH,
        "Type error",
        "A value was used in a way its type does not allow.",
        "Check what type the value actually has with typeof.",
        ["Types", "Functions"],
    ),
    (
        r"rangeerror|maximum call stack",
        RUNTIME_ERROR,
        "Range error",
        "A value was outside the allowed range, often from unbounded recursion.",
        "Make sure recursive functions reach a base case.",
        ["Recursion", "Call Stack"],
    ),
]

LANGUAGE_RULES = {
    "python": PYTHON_RULES,
    "rust": RUST_RULES,
    "javascript": JAVASCRIPT_RULES,
    "typescript": JAVASCRIPT_RULES,
}
