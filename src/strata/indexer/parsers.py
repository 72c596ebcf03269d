"""Structural parser registry.

Maps a language name to an optional parser capability exposing
``parse(code) -> canonical text``. Canonical text is whitespace- and
comment-free, so two bodies with identical canonical text differ only
cosmetically.

The default registry is populated lazily from ``tree_sitter_language_pack``.
A language without a registered parser is a normal, handled branch: callers
fall back to conservative behaviour (see ``strata.indexer.ast_normalizer``).

Adding a parser:
    registry = get_registry()
    registry.register("sql", MySqlCanonicalizer())
"""

import logging
from typing import Any, Protocol, runtime_checkable

_logger = logging.getLogger(__name__)

# Language name -> tree-sitter-language-pack grammar name
TREE_SITTER_LANGUAGES: dict[str, str] = {
    "python": "python",
    "javascript": "javascript",
    "typescript": "typescript",
    "tsx": "tsx",
    "go": "go",
    "rust": "rust",
    "java": "java",
    "kotlin": "kotlin",
}


@runtime_checkable
class StructuralParser(Protocol):
    """Capability: produce canonical structural text for a code body."""

    def parse(self, code: str) -> str: ...


class ParseError(Exception):
    """Raised when a parser cannot produce canonical text for a body."""

    def __init__(self, language: str, message: str) -> None:
        self.language = language
        super().__init__(f"Failed to parse {language} code: {message}")


class TreeSitterParser:
    """Canonicalizes code with a tree-sitter grammar.

    The canonical form is an s-expression of named node types with leaf token
    text, omitting comment nodes. Whitespace and formatting never reach it.
    """

    def __init__(self, language: str, parser: Any) -> None:
        self.language = language
        self._parser = parser

    def parse(self, code: str) -> str:
        try:
            tree = self._parser.parse(code.encode("utf-8"))
        except Exception as e:
            raise ParseError(self.language, str(e)) from e
        return _canonicalize(tree.root_node)


def _canonicalize(root: Any) -> str:
    tokens: list[str] = []
    stack: list[Any] = [root]

    while stack:
        item = stack.pop()
        if isinstance(item, str):
            tokens.append(item)
            continue
        if "comment" in item.type:
            continue
        if item.child_count == 0:
            tokens.append(item.text.decode("utf-8", errors="replace"))
            continue
        tokens.append(f"({item.type}")
        stack.append(")")
        stack.extend(reversed(item.children))

    return " ".join(tokens)


class ParserRegistry:
    """Registry of structural parsers keyed by language name.

    Attributes:
        languages: Names of languages with a registered parser
    """

    def __init__(self) -> None:
        self._parsers: dict[str, StructuralParser] = {}

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, language: str, parser: StructuralParser) -> None:
        """Register a parser for a language.

        Args:
            language: Language name (case-insensitive)
            parser: Object exposing ``parse(code) -> str``

        Raises:
            TypeError: If the parser has no callable ``parse``
        """
        if not callable(getattr(parser, "parse", None)):
            raise TypeError(f"Parser for {language} must expose a callable parse(code)")
        self._parsers[language.lower()] = parser

    def unregister(self, language: str) -> None:
        self._parsers.pop(language.lower(), None)

    def load_tree_sitter(self, languages: dict[str, str] | None = None) -> list[str]:
        """Register tree-sitter parsers for every grammar that can be loaded.

        Args:
            languages: Language -> grammar mapping (defaults to TREE_SITTER_LANGUAGES)

        Returns:
            Languages that were registered (empty if the grammar pack is not installed)
        """
        try:
            from tree_sitter_language_pack import get_parser
        except ImportError as e:
            _logger.debug("tree-sitter-language-pack not installed: %s", e)
            return []

        registered: list[str] = []
        for language, grammar in (languages or TREE_SITTER_LANGUAGES).items():
            if language in self._parsers:
                continue
            try:
                self._parsers[language] = TreeSitterParser(language, get_parser(grammar))
                registered.append(language)
            except Exception as e:
                _logger.debug("No tree-sitter grammar for %s: %s", language, e)

        _logger.debug("Registered tree-sitter parsers: %s", ", ".join(registered) or "none")
        return registered

    # =========================================================================
    # Retrieval
    # =========================================================================

    def get(self, language: str | None) -> StructuralParser | None:
        """Return the parser for a language, or None when none is registered."""
        if not language:
            return None
        return self._parsers.get(language.lower())

    def has(self, language: str | None) -> bool:
        return self.get(language) is not None

    @property
    def languages(self) -> list[str]:
        return sorted(self._parsers)


# Global registry instance
_registry: ParserRegistry | None = None


def get_registry() -> ParserRegistry:
    """Get the global parser registry, loading tree-sitter grammars on first use."""
    global _registry
    if _registry is None:
        _registry = ParserRegistry()
        _registry.load_tree_sitter()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (primarily for testing)."""
    global _registry
    _registry = None
