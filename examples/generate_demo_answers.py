#!/usr/bin/env python3
"""Generate synthetic answer videos for the sessionreel demo event.

Creates 3 clips with varying durations in examples/demo-answers/.
Each clip is a solid color card showing its question number, with a
quiet tone on the audio track (the merge needs an audio stream per input).

Usage:
    python examples/generate_demo_answers.py
    # Then assemble:
    sessionreel assemble --event examples/demo-event.yaml --root .sessionreel/
"""

import numpy as np
from moviepy import AudioClip, ImageClip
from pathlib import Path
from PIL import Image, ImageDraw, ImageFont

OUTPUT_DIR = Path(__file__).resolve().parent / "demo-answers"
SIZE = (640, 360)
FPS = 30

# (file stem, background color, duration in seconds, tone Hz)
ANSWERS = [
    ("a-1", (180, 60, 60),  3.0, 330),  # red
    ("a-2", (60, 60, 180),  2.0, 440),  # blue
    ("a-3", (60, 160, 60),  4.5, 550),  # green
]


def _make_card(text: str, bg_color: tuple[int, int, int]) -> np.ndarray:
    """Centered white label on a solid background."""
    img = Image.new("RGB", SIZE, bg_color)
    draw = ImageDraw.Draw(img)
    try:
        font = ImageFont.truetype(
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", 56
        )
    except OSError:
        font = ImageFont.load_default()
    bbox = draw.textbbox((0, 0), text, font=font)
    tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
    draw.text(((SIZE[0] - tw) / 2, (SIZE[1] - th) / 2), text,
              fill=(255, 255, 255), font=font)
    return np.array(img)


def _tone(freq: int, duration: float) -> AudioClip:
    def frame(t):
        wave = 0.1 * np.sin(freq * 2 * np.pi * t)
        return np.array([wave, wave]).T.copy(order="C")
    return AudioClip(frame, duration=duration, fps=44100)


def main():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    for i, (name, color, duration, freq) in enumerate(ANSWERS, start=1):
        out = OUTPUT_DIR / f"{name}.mp4"
        if out.exists():
            print(f"  skip {name} (exists)")
            continue

        card = ImageClip(_make_card(f"Question {i}", color), duration=duration)
        clip = card.with_audio(_tone(freq, duration))
        clip.write_videofile(str(out), fps=FPS, audio_codec="aac", logger=None)
        print(f"  wrote {name} ({duration}s)")

    print(f"\nDone. {len(ANSWERS)} answers in {OUTPUT_DIR}")


if __name__ == "__main__":
    main()
