"""
Données de référence du Coran : nom et nombre de versets des 114 sourates.
"""

from typing import Optional

# (nom, nombre d'ayat), dans l'ordre du mushaf : l'index 0 est la sourate 1
SURAHS = [
    ("Al-Fatihah", 7),
    ("Al-Baqarah", 286),
    ("Ali-Imran", 200),
    ("An-Nisa", 176),
    ("Al-Maidah", 120),
    ("Al-Anam", 165),
    ("Al-Araf", 206),
    ("Al-Anfal", 75),
    ("At-Taubah", 129),
    ("Yunus", 109),
    ("Hud", 123),
    ("Yusuf", 111),
    ("Ar-Rad", 43),
    ("Ibrahim", 52),
    ("Al-Hijr", 99),
    ("An-Nahl", 128),
    ("Al-Isra", 111),
    ("Al-Kahfi", 110),
    ("Maryam", 98),
    ("Ta Ha", 135),
    ("Al-Anbiya", 112),
    ("Al-Hajj", 78),
    ("Al-Muminun", 118),
    ("An-Nur", 64),
    ("Al-Furqan", 77),
    ("Asy-Syuara", 227),
    ("An-Naml", 93),
    ("Al-Qasas", 88),
    ("Al-Ankabut", 69),
    ("Ar-Ruum", 60),
    ("Luqman", 34),
    ("As-Sajdah", 30),
    ("Al-Ahzab", 73),
    ("Saba", 54),
    ("Fatir", 45),
    ("Ya-Sin", 83),
    ("Ash-Shaffat", 182),
    ("Shad", 88),
    ("Az-Zumar", 75),
    ("Gafir", 85),
    ("Fushshilat", 54),
    ("Asy-Syura", 53),
    ("Az-Zukhruf", 89),
    ("Ad-Dukhan", 59),
    ("Al-Jatsiyah", 37),
    ("Al-Ahqaf", 35),
    ("Muhammad", 38),
    ("Al-Fath", 29),
    ("Al-Hujurat", 18),
    ("Qaf", 45),
    ("Adz-Dzariyat", 60),
    ("Ath-Thuur", 49),
    ("An-Najm", 62),
    ("Al-Qamar", 55),
    ("Ar-Rahman", 78),
    ("Al-Waqiah", 96),
    ("Al-Hadid", 29),
    ("Al-Mujadilah", 22),
    ("Al-Hasyr", 24),
    ("Al-Mumtahanah", 13),
    ("Ash-Shaf", 14),
    ("Al-Jumuah", 11),
    ("Al-Munafiqun", 11),
    ("At-Taghabun", 18),
    ("Ath-Thalaq", 12),
    ("At-Tahrim", 12),
    ("Al-Mulk", 30),
    ("Al-Qalam", 52),
    ("Al-Haqqah", 52),
    ("Al-Maarij", 44),
    ("Nuh", 28),
    ("Al-Jin", 28),
    ("Al-Muzammil", 20),
    ("Al-Muddatstsir", 56),
    ("Al-Qiyamah", 40),
    ("Al-Insan", 31),
    ("Al-Mursalat", 50),
    ("An-Naba", 40),
    ("An-Naziat", 46),
    ("Abasa", 42),
    ("At-Takwir", 29),
    ("Al-Infithar", 19),
    ("Al-Muthaffifin", 36),
    ("Al-Inshiqaq", 25),
    ("Al-Buruj", 22),
    ("Ath-Thariq", 17),
    ("Al-Alaa", 19),
    ("Al-Ghasyiyah", 26),
    ("Al-Fajr", 30),
    ("Al-Balad", 20),
    ("Asy-Syams", 15),
    ("Al-Lail", 21),
    ("Adh-Dhuha", 11),
    ("Al-Inshirah", 8),
    ("At-Tin", 8),
    ("Al-Alaq", 19),
    ("Al-Qadr", 5),
    ("Al-Bayyinah", 8),
    ("Al-Zalzalah", 8),
    ("Al-Adiyat", 11),
    ("Al-Qariah", 11),
    ("At-Takatsur", 8),
    ("Al-Ashr", 3),
    ("Al-Humazah", 9),
    ("Al-Fil", 5),
    ("Quraysh", 4),
    ("Al-Maun", 7),
    ("Al-Kautsar", 3),
    ("Al-Kafirun", 6),
    ("An-Nashr", 3),
    ("Al-Lahab", 5),
    ("Al-Ikhlas", 4),
    ("Al-Falaq", 5),
    ("An-Nas", 6),
]

SURAH_COUNT = len(SURAHS)


def surah_name(number: Optional[int]) -> str:
    """Nom de la sourate (numérotée à partir de 1), ou "-" hors bornes."""
    if number is None or not 1 <= number <= SURAH_COUNT:
        return "-"
    return SURAHS[number - 1][0]


def verse_count(number: int) -> int:
    """Nombre d'ayat de la sourate. Lève ValueError hors bornes."""
    if not 1 <= number <= SURAH_COUNT:
        raise ValueError(f"Sourate inexistante : {number}")
    return SURAHS[number - 1][1]
