import re

NAMING_CONVENTIONS = ("preserve", "PascalCase", "camelCase", "snake_case", "SCREAMING_SNAKE_CASE")


def convert_case(name: str, convention: str) -> str:
    """Rename a database identifier for the generated TypeScript."""
    if convention == "preserve":
        return name

    words = [w for w in re.sub(r"([a-z])([A-Z])", r"\1_\2", name).lower().split("_") if w]

    if convention == "PascalCase":
        return "".join(w.capitalize() for w in words)
    if convention == "camelCase":
        return "".join(w if i == 0 else w.capitalize() for i, w in enumerate(words))
    if convention == "snake_case":
        return "_".join(words)
    if convention == "SCREAMING_SNAKE_CASE":
        return "_".join(w.upper() for w in words)
    return name
