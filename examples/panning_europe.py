"""Follow a panning map across western Europe.

An EngineController listens to the map's moveend/zoomend events and
re-renders the enabled overlays once the map has been still for the
debounce period.  After every settled move the composited map is saved,
so the output frames show the overlays tracking the viewport.

Requirements:
    pip install meteogrid[all]
"""

from pathlib import Path

from meteogrid import EngineController, OpenMeteoService, WebMercatorMap

OUTPUT_DIR = Path(__file__).parent / "output"

# (dx, dy) pixel pans from Paris towards the south-east, then a zoom out
MOVES = [(0, 0), (250, 150), (250, 150), (200, 100)]
DEBOUNCE = 0.6


def print_progress(metric, percent):
    print(f"  {metric:<13} {percent:3d}%", end="\r" if percent < 100 else "\n")


def main():
    OUTPUT_DIR.mkdir(exist_ok=True)
    m = WebMercatorMap(center=(48.85, 2.35), zoom=6, size=(800, 600))
    ctl = EngineController(m, OpenMeteoService(), ['cloud', 'temperature'],
                           debounce=DEBOUNCE, progress=print_progress,
                           overrides={'cloud': {'cloud_render_style': 'soft'}})
    try:
        for i, (dx, dy) in enumerate(MOVES):
            if dx or dy:
                m.pan_by(dx, dy)
            # run the debounced cycle now rather than waiting for the timer
            ctl.flush()
            m.composite(background=(0.85, 0.88, 0.9, 1.0)).save(
                OUTPUT_DIR / f"europe_{i:02d}.png")
            print(f"Frame {i}: center {m.center.lat:.2f}, {m.center.lng:.2f}")

        m.set_zoom(5)
        ctl.flush()
        m.composite(background=(0.85, 0.88, 0.9, 1.0)).save(
            OUTPUT_DIR / "europe_zoomed_out.png")
    finally:
        ctl.close()


if __name__ == "__main__":
    main()
