"""Default lookalike glyphs used as scramble decoys for Latin letters."""

from __future__ import annotations

from typing import Mapping, Tuple

LANGUAGE_MAPPINGS: Mapping[str, Tuple[str, ...]] = {
    "A": ("А", "Α", "Ä", "Á", "Å", "Ā", "Λ", "Д"),
    "B": ("В", "Β", "Б", "ß", "Ь", "Ъ"),
    "C": ("С", "Ç", "Ć", "Č", "Ϲ", "€"),
    "D": ("Ď", "Đ", "Δ", "Ð", "Ԁ"),
    "E": ("Е", "Ε", "É", "È", "Ë", "Ē", "Ə", "Э", "Σ"),
    "F": ("Ϝ", "Ғ", "₣", "Ƒ"),
    "G": ("Ğ", "Ģ", "Ǵ", "Ԍ", "Γ"),
    "H": ("Н", "Η", "Ħ", "Ң", "Ӈ"),
    "I": ("І", "Ι", "Í", "Ì", "Ï", "Ī", "Ї"),
    "J": ("Ј", "Ĵ", "Ɉ"),
    "K": ("К", "Κ", "Ķ", "Қ", "Ҝ"),
    "L": ("Ł", "Ľ", "Ĺ", "Ļ", "Ꮮ"),
    "M": ("М", "Μ", "Ӎ", "Ϻ"),
    "N": ("Ν", "Ñ", "Ń", "Ň", "И", "Π"),
    "O": ("О", "Ο", "Ö", "Ó", "Ø", "Ō", "Θ", "Ф"),
    "P": ("Р", "Ρ", "Þ", "Ҏ"),
    "Q": ("Ԛ", "Ǫ", "Ɋ"),
    "R": ("Я", "Ř", "Ŕ", "Ŗ", "Г"),
    "S": ("Ѕ", "Š", "Ś", "Ş", "§"),
    "T": ("Т", "Τ", "Ť", "Ţ", "Ŧ"),
    "U": ("Ü", "Ú", "Ù", "Ū", "Ц", "Џ", "Ʊ"),
    "V": ("Ѵ", "Ṽ", "Ʋ", "∨"),
    "W": ("Ŵ", "Ш", "Щ", "Ѡ", "Ω"),
    "X": ("Х", "Χ", "Ж", "Ӽ"),
    "Y": ("У", "Υ", "Ý", "Ÿ", "Ү", "Ψ"),
    "Z": ("Ζ", "Ž", "Ź", "Ż", "Ƶ"),
}


def lookup_language_glyphs(upper_letter: str) -> Tuple[str, ...]:
    """Return lookalike glyphs for an upper-cased letter, or an empty tuple."""
    return LANGUAGE_MAPPINGS.get(upper_letter, ())
