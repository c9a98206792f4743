"""
brewver - Install a specific version of a Homebrew formula.

Finds the commit in the formula repository where the requested version was
bottled, fetches the formula at that commit and hands its bottle to brew.
"""

__version__ = "0.1.0"


def __getattr__(name: str):
    """Lazy import for heavy dependencies."""
    if name == "VersionInstaller":
        from brewver.core.pipeline import VersionInstaller

        return VersionInstaller
    if name == "FormulaRevision":
        from brewver.models.formula import FormulaRevision

        return FormulaRevision
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["VersionInstaller", "FormulaRevision", "__version__"]
