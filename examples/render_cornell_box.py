#!/usr/bin/env python3
"""Render the Cornell box with any of the estimators.

Usage:
    python -m examples.render_cornell_box [options]

Options:
    --integrator NAME   av, direct, direct_ems, direct_mats, direct_mis,
                        path_mats, path_mis, vol_path_mats, vol_path_mis,
                        photon_mapper (default: path_mis)
    --width WIDTH       Image width in pixels (default: 512)
    --height HEIGHT     Image height in pixels (default: 512)
    --samples SAMPLES   Number of samples per pixel (default: 100)
    --max-depth DEPTH   Maximum bounces (default: 64)
    --fog DENSITY       Fill the box with fog of this extinction (default: 0)
    --photons COUNT     Photons to deposit for photon_mapper (default: 1000000)
    --output OUTPUT     Output file; .npy keeps raw radiance (default: cornell_box.png)
    --save-scene PATH   Also write the scene as JSON
    --batch-size SIZE   Samples per progress update (default: 10)
    --quiet             Suppress progress output

Example:
    python -m examples.render_cornell_box --integrator vol_path_mis --fog 0.002 --samples 64
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

import taichi as ti


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Render the Cornell box scene.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--integrator", type=str, default="path_mis", help="Estimator (default: path_mis)")
    parser.add_argument("--width", type=int, default=512, help="Image width in pixels (default: 512)")
    parser.add_argument("--height", type=int, default=512, help="Image height in pixels (default: 512)")
    parser.add_argument("--samples", type=int, default=100, help="Samples per pixel (default: 100)")
    parser.add_argument("--max-depth", type=int, default=64, help="Maximum bounces (default: 64)")
    parser.add_argument("--fog", type=float, default=0.0, help="Fog extinction inside the box (default: 0)")
    parser.add_argument("--photons", type=int, default=1_000_000, help="Photon count (default: 1000000)")
    parser.add_argument("--output", type=str, default="cornell_box.png", help="Output file path")
    parser.add_argument("--save-scene", type=str, default=None, help="Write the scene as JSON")
    parser.add_argument("--batch-size", type=int, default=10, help="Samples per progress update (default: 10)")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser.parse_args()


def render_cornell_box(
    integrator: str = "path_mis",
    width: int = 512,
    height: int = 512,
    num_samples: int = 100,
    max_depth: int = 64,
    fog: float = 0.0,
    photons: int = 1_000_000,
    output_path: str = "cornell_box.png",
    scene_path: str | None = None,
    batch_size: int = 10,
    quiet: bool = False,
) -> Path:
    """Render the Cornell box and save it.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports: Taichi must be initialized first
    from lightpath.camera.pinhole import setup_camera
    from lightpath.config import RenderConfig
    from lightpath.core.progressive import ProgressiveRenderer
    from lightpath.scene.cornell_box import CornellBoxParams, create_cornell_box_scene

    config = RenderConfig(integrator=integrator, max_depth=max_depth, photon_count=photons)

    if not quiet:
        print(f"Creating Cornell box scene ({width}x{height})...")
    scene, camera = create_cornell_box_scene(params=CornellBoxParams(fog_density=fog))
    camera.aspect_ratio = width / height
    setup_camera(camera)

    if scene_path is not None:
        Path(scene_path).write_text(
            json.dumps({"scene": scene.to_dict(), "camera": camera.to_dict(), "render": config.to_dict()}, indent=2)
        )

    renderer = ProgressiveRenderer(width, height, config)
    if config.integrator.name == "PHOTON_MAPPER" and not quiet:
        print(f"Tracing {photons} photons...")

    if not quiet:
        print(f"Rendering {num_samples} samples per pixel with {config.integrator.name.lower()}...")
    start_time = time.time()

    def progress_callback(current: int, target: int) -> None:
        if not quiet:
            elapsed = time.time() - start_time
            progress_pct = (current / target) * 100 if target > 0 else 0
            samples_per_sec = current / elapsed if elapsed > 0 else 0
            print(
                f"\r  Progress: {current}/{target} samples "
                f"({progress_pct:.1f}%) - {samples_per_sec:.1f} spp/s",
                end="",
                flush=True,
            )

    renderer.render(num_samples=num_samples, batch_size=batch_size, callback=progress_callback)
    if not quiet:
        print()

    output_file = Path(output_path)
    renderer.save_image(str(output_file))

    if not quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {time.time() - start_time:.2f}s")
    return output_file


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        ti.init(arch=ti.gpu)
        if not args.quiet:
            print("Using GPU backend")
    except Exception:
        ti.init(arch=ti.cpu)
        if not args.quiet:
            print("Using CPU backend")

    try:
        render_cornell_box(
            integrator=args.integrator,
            width=args.width,
            height=args.height,
            num_samples=args.samples,
            max_depth=args.max_depth,
            fog=args.fog,
            photons=args.photons,
            output_path=args.output,
            scene_path=args.save_scene,
            batch_size=args.batch_size,
            quiet=args.quiet,
        )
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
