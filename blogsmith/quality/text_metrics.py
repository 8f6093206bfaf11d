"""
Text heuristics used by the quality scorer
All functions are pure and deterministic
"""

import re
from typing import List

# Transition words that indicate logical flow
TRANSITION_WORDS = [
    'however', 'therefore', 'moreover', 'furthermore', 'consequently',
    'additionally', 'meanwhile', 'nevertheless', 'thus', 'hence',
    'accordingly', 'similarly', 'conversely', 'specifically', 'notably',
    'for example', 'for instance', 'in contrast', 'on the other hand',
    'as a result', 'in addition', 'in fact', 'in particular'
]

# First-person markers; "i" and "we" need trailing whitespace so "I/O" is not flagged,
# and "us" must be lowercase or capitalised and not run into a hyphen ("US", "us-east-1")
FIRST_PERSON_PATTERN = re.compile(
    r"\b(?:i(?=\s)|we(?=\s)|my|me|mine|our|(?-i:[Uu]s)(?![-\w])|ours|i'm|i've|i'll|we're|we've)\b",
    re.IGNORECASE
)

CITATION_MARKER = re.compile(r'\s?\[\d+\]')
SENTENCE_END = re.compile(r'[.!?]+(?:\s+|$)')
MERMAID_FENCE = re.compile(r'```\s*mermaid', re.IGNORECASE)

_TRANSITION_PATTERNS = [re.compile(r'\b' + re.escape(word) + r'\b') for word in TRANSITION_WORDS]


def strip_citations(text: str) -> str:
    return CITATION_MARKER.sub('', text or '')


def count_words(text: str) -> int:
    return len([w for w in (text or '').split() if w])


def split_sentences(text: str) -> List[str]:
    """Split on terminal punctuation followed by whitespace or end of text"""
    return [s.strip() for s in SENTENCE_END.split(strip_citations(text)) if s.strip()]


def average_sentence_length(text: str) -> float:
    sentences = split_sentences(text)
    if not sentences:
        return 0.0
    return sum(count_words(s) for s in sentences) / len(sentences)


def longest_long_sentence_run(sentences: List[str], long_sentence_words: int) -> int:
    """Length of the longest run of consecutive sentences above the word limit"""
    longest = current = 0
    for sentence in sentences:
        if count_words(sentence) > long_sentence_words:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def count_transition_words(text: str) -> int:
    """Total occurrences of transition words and phrases"""
    lower = (text or '').lower()
    return sum(len(pattern.findall(lower)) for pattern in _TRANSITION_PATTERNS)


def find_first_person(text: str) -> List[str]:
    return FIRST_PERSON_PATTERN.findall(strip_citations(text))


def count_term(text: str, term: str) -> int:
    """Whole-word, case-insensitive occurrences of a term or phrase"""
    term = (term or '').strip().lower()
    if not term:
        return 0
    pattern = re.compile(r'\b' + r'\s+'.join(re.escape(part) for part in term.split()) + r'\b')
    return len(pattern.findall((text or '').lower()))


def keyword_density(text: str, term: str) -> float:
    """Occurrences of the term per word of text"""
    words = count_words(strip_citations(text))
    if words == 0:
        return 0.0
    return count_term(text, term) / words


def mentions_term(text: str, term: str) -> bool:
    """True when the phrase, or any significant word of it, appears in the text"""
    if count_term(text, term):
        return True
    significant = [w for w in re.findall(r"[a-z0-9][a-z0-9'-]*", (term or '').lower()) if len(w) > 4]
    return any(count_term(text, word) for word in significant)


def has_diagram_reference(text: str) -> bool:
    return bool(MERMAID_FENCE.search(text or ''))
