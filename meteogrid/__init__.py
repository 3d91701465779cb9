from .bounds import LatLng, ViewportBounds, bounds_hash
from .grid import (
    GridPoint,
    dynamic_max_cells,
    grid_dimensions,
    grid_coordinates,
    grid_points,
    cell_edges,
)
from .sampling import dynamic_sampling_ratio, select_samples
from .fetch import fetch_samples
from .interpolate import haversine_km, idw, interpolate_points, interpolate_grid
from .cache import GridCache
from .config import EngineConfig
from .metrics import METRICS, MetricSpec, get_metric, wind_vector
from .host import MapHost, CanvasOverlay, WebMercatorMap, host_available
from .remote_data import Reading, PointWeatherService, OpenMeteoService, WeatherApiService
from .engine import Grid, GridCell, GridEngine, build_grid, percent_progress
from .controller import EngineController

__version__ = "0.1.0"
