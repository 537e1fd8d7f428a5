#!/usr/bin/env python3
"""Render a scene described by a JSON file.

The file holds three sections, as written by
``render_cornell_box --save-scene``:

    {
        "scene": {...},    # SceneManager.to_dict()
        "camera": {...},   # PinholeCamera.to_dict()
        "render": {...}    # RenderConfig.to_dict()
    }

Usage:
    python -m examples.render_scene SCENE.json [--samples N] [--output FILE]
        [--integrator NAME] [--width W] [--height H]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import taichi as ti


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render a JSON scene file.")
    parser.add_argument("scene", type=str, help="Scene JSON file")
    parser.add_argument("--integrator", type=str, default=None, help="Override the file's integrator")
    parser.add_argument("--width", type=int, default=256, help="Image width in pixels (default: 256)")
    parser.add_argument("--height", type=int, default=256, help="Image height in pixels (default: 256)")
    parser.add_argument("--samples", type=int, default=64, help="Samples per pixel (default: 64)")
    parser.add_argument("--output", type=str, default="scene.png", help="Output file path")
    return parser.parse_args()


def render_scene(
    scene_file: str,
    integrator: str | None = None,
    width: int = 256,
    height: int = 256,
    num_samples: int = 64,
    output_path: str = "scene.png",
) -> Path:
    from lightpath.camera.pinhole import PinholeCamera, setup_camera
    from lightpath.config import RenderConfig
    from lightpath.core.progressive import ProgressiveRenderer
    from lightpath.scene.manager import SceneManager

    data = json.loads(Path(scene_file).read_text())
    render = dict(data.get("render", {}))
    if integrator is not None:
        render["integrator"] = integrator
    config = RenderConfig.from_dict(render)

    scene = SceneManager()
    scene.from_dict(data["scene"])
    camera = PinholeCamera.from_dict(data["camera"])
    camera.aspect_ratio = width / height
    setup_camera(camera)

    renderer = ProgressiveRenderer(width, height, config)
    for current, target in renderer.render_progressive(num_samples, batch_size=max(1, num_samples // 10)):
        print(f"\r  {current}/{target} spp", end="", flush=True)
    print()

    output_file = Path(output_path)
    renderer.save_image(str(output_file))
    print(f"Saved to: {output_file.absolute()}")
    return output_file


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    ti.init(arch=ti.cpu)
    try:
        render_scene(args.scene, args.integrator, args.width, args.height, args.samples, args.output)
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
