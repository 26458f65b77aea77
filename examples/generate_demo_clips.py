#!/usr/bin/env python3
"""Generate synthetic clips for the clipstitch demo manifest.

Creates 4 clips in examples/demo-clips/ with mixed orientations and
lengths. Each clip ends with a white "OUTRO" card lasting OUTRO_SECONDS,
so the remove-outro option is easy to check by eye: with it on, no
OUTRO card should appear in the export.

Usage:
    python examples/generate_demo_clips.py
    # Then export:
    clipstitch export --manifest examples/demo-export.yaml \
        --output examples/demo-renders/demo.mp4
"""

import numpy as np
from moviepy import ColorClip, CompositeVideoClip, ImageClip
from pathlib import Path
from PIL import Image, ImageDraw, ImageFont

OUTPUT_DIR = Path(__file__).resolve().parent / "demo-clips"
FPS = 30
OUTRO_SECONDS = 1.5

# Portrait, landscape and square sources, so both fit modes have
# something to crop or pad.
CLIPS = [
    ("portrait-red",    (720, 1280), (180, 60, 60),  4.0),
    ("landscape-blue",  (1280, 720), (60, 60, 180),  5.0),
    ("square-green",    (720, 720),  (60, 160, 60),  3.5),
    ("landscape-gold",  (640, 360),  (210, 180, 60), 6.0),
]


def _make_outro_frame(size: tuple[int, int], bg_color: tuple[int, int, int]) -> np.ndarray:
    """Create an 'OUTRO' card: white text on a dimmed version of the clip color."""
    dim = tuple(max(c // 3, 20) for c in bg_color)
    img = Image.new("RGB", size, dim)
    draw = ImageDraw.Draw(img)
    try:
        font = ImageFont.truetype(
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", size[1] // 8
        )
    except OSError:
        font = ImageFont.load_default()
    bbox = draw.textbbox((0, 0), "OUTRO", font=font)
    tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
    draw.text(
        ((size[0] - tw) / 2, (size[1] - th) / 2),
        "OUTRO",
        fill=(255, 255, 255),
        font=font,
    )
    return np.array(img)


def main():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    for name, size, color, duration in CLIPS:
        out = OUTPUT_DIR / f"{name}.mp4"
        if out.exists():
            print(f"  skip {name} (exists)")
            continue

        body_dur = duration - OUTRO_SECONDS
        body = ColorClip(size=size, color=color, duration=body_dur)
        outro = ImageClip(_make_outro_frame(size, color), duration=OUTRO_SECONDS)
        outro = outro.with_start(body_dur)

        final = CompositeVideoClip([body, outro], size=size)
        final.write_videofile(str(out), fps=FPS, logger=None)
        print(f"  wrote {name} ({duration}s, {size[0]}x{size[1]})")

    print(f"\nDone. {len(CLIPS)} clips in {OUTPUT_DIR}")


if __name__ == "__main__":
    main()
