"""Weather overlays for New York City.

Renders temperature, precipitation and cloud overlays for a viewport over
New York on a headless Web-Mercator map and writes one PNG per overlay,
plus an animated GIF of the wind streamlines.

Point readings come from the Open-Meteo API (no key required).  Only a
fraction of the grid is fetched; the rest is filled by inverse distance
weighting.

Requirements:
    pip install meteogrid[all]
"""

from pathlib import Path

from meteogrid import GridEngine, OpenMeteoService, WebMercatorMap

# Lower Manhattan, zoomed to show the five boroughs
CENTER = (40.70, -73.95)
ZOOM = 9
SIZE = (960, 720)

OUTPUT_DIR = Path(__file__).parent / "output"


def main():
    OUTPUT_DIR.mkdir(exist_ok=True)
    m = WebMercatorMap(center=CENTER, zoom=ZOOM, size=SIZE)
    service = OpenMeteoService()
    print(f"Viewport: {m.get_bounds().to_wsen()}")

    for metric in ('temperature', 'precipitation', 'cloud'):
        engine = GridEngine(metric, service, host=m, verbose=True)
        grid = engine.render()
        if grid is None:
            print(f"  {metric}: no data ({engine.last_status})")
            continue
        path = engine.save(OUTPUT_DIR / f"nyc_{metric}.png")
        print(f"  {metric}: {grid.n_succeeded}/{grid.n_requested} samples "
              f"-> {path}")
        engine.clear()

    # Readings are cached per coordinate, so the wind grid reuses them
    wind = GridEngine('wind', service, host=m, animate=False, verbose=True)
    if wind.render() is not None:
        wind.record(OUTPUT_DIR / "nyc_wind.gif", duration=3.0, fps=30,
                    background=(0.1, 0.12, 0.16, 1.0))
    wind.clear()


if __name__ == "__main__":
    main()
