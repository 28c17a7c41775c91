"""Word Reconstructor - repair delimiter-split words.

Bash's COMP_WORDBREAKS contains ":", so a model name such as
"llama3.1:latest" reaches the completion as three words: "llama3.1", ":" and
"latest". Completion resolves against the rejoined value, then strips the
already-typed "llama3.1:" prefix from the candidates because bash only
replaces the word after the colon.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DELIMITER = ":"


@dataclass(frozen=True)
class ReconstructedWord:
    """Working value for the word under the cursor.

    Attributes:
        value: Value to resolve against (rejoined when split)
        prefix: "base:" already typed before the cursor word ("" when not split)
    """

    value: str
    prefix: str = ""

    @property
    def was_split(self) -> bool:
        return bool(self.prefix)


def reconstruct(
    words: list[str] | tuple[str, ...], cword: int, delimiter: str = DELIMITER
) -> ReconstructedWord:
    """Rejoin base + delimiter + current when the previous word is the delimiter.

    Example:
        >>> reconstruct(["ollama", "run", "llama3.1", ":", "lat"], 4)
        ReconstructedWord(value='llama3.1:lat', prefix='llama3.1:')
    """
    current = words[cword] if 0 <= cword < len(words) else ""
    if cword >= 3 and cword - 1 < len(words) and words[cword - 1] == delimiter:
        prefix = words[cword - 2] + delimiter
        logger.debug(f"Delimiter split detected, working value '{prefix}{current}'")
        return ReconstructedWord(value=prefix + current, prefix=prefix)
    return ReconstructedWord(value=current)


def resplit(candidates: list[str], word: ReconstructedWord) -> list[str]:
    """Keep candidates under the typed prefix and strip it.

    Example:
        >>> resplit(["llama3.1:latest", "mistral:7b"], ReconstructedWord("llama3.1:", "llama3.1:"))
        ['latest']
    """
    if not word.was_split:
        return list(candidates)
    return [c[len(word.prefix) :] for c in candidates if c.startswith(word.prefix)]


__all__ = ["DELIMITER", "ReconstructedWord", "reconstruct", "resplit"]
