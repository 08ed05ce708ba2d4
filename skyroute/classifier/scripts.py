"""Script-level location rules shared by every language table.

These rules do not depend on one language's grammar, only on the writing
system: capitalized Latin runs, CJK runs with known vocabulary cut out,
Arabic and Devanagari word runs, geographic suffixes and, last, whatever text
is left once all known vocabulary is removed.
"""

from __future__ import annotations

import re
from typing import Callable, Optional, Pattern

from skyroute.classifier.arabic import ARABIC_WORD_RE
from skyroute.classifier.english import clean_word
from skyroute.classifier.rules import (
    CJK_CHARS,
    LATIN_CHARS,
    ExtractionRule,
    Lexicon,
    Stage,
    unsegmented_candidates,
)

WHOLE_TEXT_MAX_WORDS = 3
WHOLE_TEXT_MAX_CHARS = 40

_LATIN_TOKEN_RE = re.compile(rf"[{LATIN_CHARS}][{LATIN_CHARS}'’\-]*")
_DEVANAGARI_WORD_RE = re.compile("[ऀ-ॣ०-ॿ]+")
_LATIN_SUFFIX_RE = re.compile(
    rf"((?:[{LATIN_CHARS}][{LATIN_CHARS}'\-]*\s+){{1,3}})"
    r"(city|town|county|province|prefecture|state|village|island|district)\b",
    re.IGNORECASE,
)
_CJK_SUFFIX_RE = re.compile(f"[{CJK_CHARS}]{{1,6}}?[市區区縣县省州都府郡県道]")
_WHOLE_TEXT_SPLIT_RE = re.compile(r"[\s,.!?;:()\"“”。，！？；：、「」『』ぁ-ゟ؟،]+")


def first_word_run(
    text: str,
    word_re: Pattern[str],
    lexicon: Lexicon,
    accept: Callable[[str], bool] = lambda word: True,
    max_words: int = 4,
) -> Optional[str]:
    """First run of adjacent, accepted, non-vocabulary words."""
    run: list[str] = []
    last_end: Optional[int] = None
    for match in word_re.finditer(text):
        word = clean_word(match.group(0))
        ok = bool(word) and accept(word) and word.lower() not in lexicon.words
        contiguous = last_end is not None and not text[last_end:match.start()].strip()
        if run and not (ok and contiguous):
            break
        if ok:
            run.append(word)
            last_end = match.end()
            if len(run) >= max_words:
                break
    return " ".join(run) or None


def _latin_proper_noun(text: str, lexicon: Lexicon) -> Optional[str]:
    return first_word_run(text, _LATIN_TOKEN_RE, lexicon, accept=lambda word: word[0].isupper())


def _cjk_run(text: str, lexicon: Lexicon) -> Optional[str]:
    return next(unsegmented_candidates(text, lexicon), None)


def _arabic_run(text: str, lexicon: Lexicon) -> Optional[str]:
    return first_word_run(text, ARABIC_WORD_RE, lexicon, max_words=3)


def _devanagari_run(text: str, lexicon: Lexicon) -> Optional[str]:
    return first_word_run(text, _DEVANAGARI_WORD_RE, lexicon, max_words=3)


def _latin_suffix(text: str, lexicon: Lexicon) -> Optional[str]:
    for match in _LATIN_SUFFIX_RE.finditer(text):
        words = match.group(1).split()
        while words and words[0].lower() in lexicon.words:
            words.pop(0)
        if words:
            return " ".join(words + [match.group(2)])
    return None


def _cjk_suffix(text: str, lexicon: Lexicon) -> Optional[str]:
    match = _CJK_SUFFIX_RE.search(lexicon.cut_terms(text))
    return match.group(0) if match else None


def _whole_text(text: str, lexicon: Lexicon) -> Optional[str]:
    tokens = []
    for raw in _WHOLE_TEXT_SPLIT_RE.split(lexicon.cut_terms(text)):
        word = clean_word(raw)
        if not word or word.isdigit() or word.lower() in lexicon.words:
            continue
        if len(word) < 2:
            continue
        tokens.append(word)
    if not 1 <= len(tokens) <= WHOLE_TEXT_MAX_WORDS:
        return None
    candidate = " ".join(tokens)
    if len(candidate) > WHOLE_TEXT_MAX_CHARS:
        return None
    return candidate


RULES = (
    ExtractionRule(name="latin_proper_noun", stage=Stage.PROPER_NOUN, extract=_latin_proper_noun),
    ExtractionRule(name="cjk_run", stage=Stage.PROPER_NOUN, extract=_cjk_run),
    ExtractionRule(name="arabic_run", stage=Stage.PROPER_NOUN, extract=_arabic_run),
    ExtractionRule(name="devanagari_run", stage=Stage.PROPER_NOUN, extract=_devanagari_run),
    ExtractionRule(name="latin_suffix", stage=Stage.GEOGRAPHIC_SUFFIX, extract=_latin_suffix),
    ExtractionRule(name="cjk_suffix", stage=Stage.GEOGRAPHIC_SUFFIX, extract=_cjk_suffix),
    ExtractionRule(name="whole_text", stage=Stage.WHOLE_TEXT, extract=_whole_text),
)
