"""
Devanagari to Latin transliteration for names and place names.

Phonetic and lossy: long and short vowels collapse ("ई" and "इ" both give
"i"), the inherent "a" is dropped at the end of a word, and every word is
title-cased. Good enough for search and display, not for round-tripping.
"""

from __future__ import annotations

import re

VOWELS = {
    "अ": "a", "आ": "aa", "इ": "i", "ई": "i", "उ": "u", "ऊ": "u",
    "ऋ": "ri", "ए": "e", "ऐ": "ai", "ओ": "o", "औ": "au",
}

MATRAS = {
    "ा": "a", "ि": "i", "ी": "i", "ु": "u", "ू": "u",
    "े": "e", "ै": "ai", "ो": "o", "ौ": "au", "ृ": "ri",
}

CONSONANTS = {
    "क": "k", "ख": "kh", "ग": "g", "घ": "gh", "ङ": "ng",
    "च": "ch", "छ": "chh", "ज": "j", "झ": "jh", "ञ": "ny",
    "ट": "t", "ठ": "th", "ड": "d", "ढ": "dh", "ण": "n",
    "त": "t", "थ": "th", "द": "d", "ध": "dh", "न": "n",
    "प": "p", "फ": "ph", "ब": "b", "भ": "bh", "म": "m",
    "य": "y", "र": "r", "ल": "l", "व": "v",
    "श": "sh", "ष": "sh", "स": "s", "ह": "h",
}

NASALS = {"ं": "n", "ँ": "n", "ः": "h"}

VIRAMA = "्"
NUKTA = "़"

_LATIN_WORD = re.compile(r"^[a-zA-Z0-9.,'\"\-/]+$")
_LATIN_TEXT = re.compile(r"^[a-zA-Z\s.'\-/0-9]+$")
_ASCII_ALNUM = re.compile(r"[a-zA-Z0-9]")


def transliterate_word(word: str) -> str:
    """Transliterate one whitespace-free token (no casing applied)."""
    if not word:
        return ""
    if _LATIN_WORD.match(word):
        return word

    out = []
    i = 0
    n = len(word)
    while i < n:
        ch = word[i]

        if ch == NUKTA:
            i += 1
            continue

        if ch in VOWELS:
            out.append(VOWELS[ch])
            i += 1
            continue

        if ch in NASALS:
            out.append(NASALS[ch])
            i += 1
            continue

        if ch in CONSONANTS:
            out.append(CONSONANTS[ch])
            nxt = word[i + 1] if i + 1 < n else ""
            if nxt == VIRAMA:
                i += 2
                continue
            if nxt in MATRAS:
                out.append(MATRAS[nxt])
                i += 2
                continue
            # Inherent vowel is silent word-finally (also before a final nasal)
            is_last = i == n - 1 or (i == n - 2 and nxt in NASALS)
            if not is_last:
                out.append("a")
            i += 1
            continue

        if ch in MATRAS:
            out.append(MATRAS[ch])
        elif _ASCII_ALNUM.match(ch):
            out.append(ch)
        i += 1

    return "".join(out)


def hindi_to_english(text: str) -> str:
    """
    Transliterate Devanagari text into title-cased Latin words.

    Text that is already Latin is returned unchanged.

    Args:
        text: Source text, possibly mixed script

    Returns:
        Transliterated text, or "" for empty input
    """
    if not text or not text.strip():
        return ""
    if _LATIN_TEXT.match(text):
        return text

    words = []
    for token in text.split():
        t = transliterate_word(token)
        if t:
            words.append(t[0].upper() + t[1:].lower())
    return " ".join(words)
