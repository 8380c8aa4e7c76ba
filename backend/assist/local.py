from __future__ import annotations

import re
from dataclasses import dataclass

from .templates import DISCLAIMER, EDUCATION_HEADER, HEADER_LINE, NO_COMPLAINT, RED_FLAG_HEADER, profile_line


@dataclass(frozen=True)
class TopicTips:
    topic: str
    pattern: re.Pattern[str]
    advice: tuple[str, ...]
    red_flags: tuple[str, ...]


# Checked in order; the first matching topic wins.
TOPIC_TIPS: tuple[TopicTips, ...] = (
    TopicTips(
        topic="fever",
        pattern=re.compile(r"demam|panas|suhu", re.IGNORECASE),
        advice=(
            "Istirahat cukup dan minum cairan hangat.",
            "Pantau suhu tubuh setiap 4-6 jam.",
            "Jika demam lebih dari 3 hari, konsultasi dokter.",
        ),
        red_flags=("Demam sangat tinggi lebih dari 39C", "Kejang", "Sesak napas"),
    ),
    TopicTips(
        topic="cough_cold",
        pattern=re.compile(r"batuk|pilek|flu|tenggorokan", re.IGNORECASE),
        advice=(
            "Perbanyak minum air putih dan hindari asap rokok.",
            "Berkumur air hangat untuk membantu tenggorokan.",
            "Gunakan masker jika batuk untuk mencegah penularan.",
        ),
        red_flags=("Batuk berdarah", "Sesak napas", "Nyeri dada berat"),
    ),
    TopicTips(
        topic="headache",
        pattern=re.compile(r"sakit kepala|pusing|migrain", re.IGNORECASE),
        advice=(
            "Istirahat di ruangan tenang dan cukup tidur.",
            "Batasi kafein jika memicu pusing.",
            "Catat pemicu seperti stres atau kurang tidur.",
        ),
        red_flags=("Sakit kepala mendadak sangat hebat", "Kelemahan pada satu sisi tubuh", "Sulit bicara"),
    ),
    TopicTips(
        topic="chest_breathing",
        pattern=re.compile(r"nyeri dada|sesak|nafas", re.IGNORECASE),
        advice=(
            "Hentikan aktivitas berat dan duduk dengan posisi nyaman.",
            "Hindari merokok dan paparan polusi.",
            "Cari bantuan medis jika gejala tidak membaik.",
        ),
        red_flags=("Nyeri dada menjalar ke lengan atau rahang", "Sesak napas berat", "Pingsan"),
    ),
    TopicTips(
        topic="digestive",
        pattern=re.compile(r"mual|muntah|diare|perut", re.IGNORECASE),
        advice=(
            "Minum oralit atau cairan elektrolit untuk mencegah dehidrasi.",
            "Hindari makanan pedas dan berlemak sementara.",
            "Makan porsi kecil dan sering.",
        ),
        red_flags=("Muntah terus-menerus", "BAB berdarah", "Tanda dehidrasi berat"),
    ),
)

GENERIC_ADVICE = (
    "Perhatikan perubahan gejala dari waktu ke waktu.",
    "Cukupi istirahat dan cairan.",
    "Hindari aktivitas yang memperberat keluhan.",
)
GENERIC_RED_FLAGS = ("Nyeri hebat mendadak", "Sesak napas", "Penurunan kesadaran")


def find_topic_tips(text: str | None) -> TopicTips | None:
    if not text:
        return None
    for tips in TOPIC_TIPS:
        if tips.pattern.search(text):
            return tips
    return None


def generate_local_response(complaint: str | None, patient=None) -> str:
    tips = find_topic_tips(complaint)
    advice = tips.advice if tips else GENERIC_ADVICE
    red_flags = tips.red_flags if tips else GENERIC_RED_FLAGS

    lines = [
        HEADER_LINE,
        f"Ringkasan keluhan: {complaint or NO_COMPLAINT}",
    ]
    if patient is not None:
        lines.append(profile_line(patient))
    lines.extend(
        [
            "",
            EDUCATION_HEADER,
            *[f"- {item}" for item in advice],
            "",
            RED_FLAG_HEADER,
            *[f"- {item}" for item in red_flags],
            "",
            DISCLAIMER,
        ]
    )
    return "\n".join(lines)
