"""Photon storage: an append-only arena frozen into a uniform-grid index.

The preprocessing pass writes photons into a PhotonArena, either from a
kernel through deposit_photon() (an atomic counter hands out slots) or from
Python with PhotonArena.deposit(). PhotonArena.build() freezes the arena
exactly once into a PhotonMap:

- photons are sorted by grid cell with NumPy and exposed as read-only arrays;
- the sorted photons and the per-cell ranges are uploaded to Taichi fields
  so render kernels can walk the same grid (count_photons_in_radius()).

Deposits after build() raise, and no query is possible before it.

Example:
    >>> from lightpath.photon.photon_map import PhotonArena
    >>> arena = PhotonArena(capacity=1000)
    >>> arena.deposit((0, 0, 0), (0, 1, 0), (1, 1, 1))
    >>> photon_map = arena.build(radius=0.1)
    >>> photon_map.query((0, 0, 0), 0.1)
    array([0])
"""

import logging
import math

import numpy as np
import taichi as ti
import taichi.math as tm

logger = logging.getLogger(__name__)

vec3 = tm.vec3

MAX_PHOTONS = 1_200_000

# Cells per axis of the photon grid
MAX_GRID_RES = 64

# Arena (unsorted, written during preprocessing)
arena_positions = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PHOTONS)
arena_directions = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PHOTONS)
arena_powers = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PHOTONS)
arena_count = ti.field(dtype=ti.i32, shape=())
arena_capacity = ti.field(dtype=ti.i32, shape=())

# Frozen map (sorted by grid cell)
map_positions = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PHOTONS)
map_directions = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PHOTONS)
map_powers = ti.Vector.field(3, dtype=ti.f32, shape=MAX_PHOTONS)
cell_start = ti.field(dtype=ti.i32, shape=(MAX_GRID_RES, MAX_GRID_RES, MAX_GRID_RES))
cell_count = ti.field(dtype=ti.i32, shape=(MAX_GRID_RES, MAX_GRID_RES, MAX_GRID_RES))
grid_origin = ti.Vector.field(3, dtype=ti.f32, shape=())
grid_cell_size = ti.Vector.field(3, dtype=ti.f32, shape=())
grid_resolution = ti.Vector.field(3, dtype=ti.i32, shape=())
map_photon_count = ti.field(dtype=ti.i32, shape=())


@ti.func
def deposit_photon(position: vec3, direction: vec3, power: vec3) -> ti.i32:
    """Append a photon from inside a kernel.

    Returns:
        1 if the photon was stored, 0 if the arena was full.
    """
    idx = ti.atomic_add(arena_count[None], 1)
    stored = 0
    if idx < arena_capacity[None]:
        arena_positions[idx] = position
        arena_directions[idx] = direction
        arena_powers[idx] = power
        stored = 1
    return stored


class PhotonArena:
    """Append-only photon buffer backed by preallocated Taichi fields.

    Only one arena is live at a time: creating one resets the shared
    fields.

    Args:
        capacity: Maximum number of photons the arena accepts.

    Raises:
        RuntimeError: If capacity exceeds MAX_PHOTONS.
    """

    def __init__(self, capacity: int) -> None:
        if capacity > MAX_PHOTONS:
            raise RuntimeError(f"Photon capacity {capacity} exceeds maximum ({MAX_PHOTONS})")
        if capacity < 1:
            raise ValueError(f"Photon capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._frozen = False
        arena_count[None] = 0
        arena_capacity[None] = capacity

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return min(int(arena_count[None]), self.capacity)

    @property
    def dropped(self) -> int:
        """Kernel deposits refused because the arena was full."""
        return max(0, int(arena_count[None]) - self.capacity)

    def _check_open(self) -> None:
        if self._frozen:
            raise RuntimeError("Photon arena has been built; no further deposits are allowed")

    def deposit(self, position, direction, power) -> int:
        """Append one photon from Python.

        Returns:
            The photon's index in the arena.

        Raises:
            RuntimeError: If the arena is frozen or full.
        """
        self._check_open()
        idx = int(arena_count[None])
        if idx >= self.capacity:
            raise RuntimeError(f"Photon arena is full ({self.capacity} photons)")
        arena_positions[idx] = [float(c) for c in position]
        arena_directions[idx] = [float(c) for c in direction]
        arena_powers[idx] = [float(c) for c in power]
        arena_count[None] = idx + 1
        return idx

    def build(self, radius: float) -> "PhotonMap":
        """Freeze the arena into a queryable PhotonMap.

        Args:
            radius: Search radius the grid is tuned for (cell size).

        Raises:
            RuntimeError: If the arena was already built.
            ValueError: If radius is not positive.
        """
        self._check_open()
        if radius <= 0.0:
            raise ValueError(f"Photon search radius must be positive, got {radius}")
        self._frozen = True

        n = len(self)
        positions = arena_positions.to_numpy()[:n]
        directions = arena_directions.to_numpy()[:n]
        powers = arena_powers.to_numpy()[:n]
        return PhotonMap(positions, directions, powers, radius)


class PhotonMap:
    """Read-only photons with a uniform grid index.

    Attributes:
        positions: (N, 3) float32 photon positions, sorted by grid cell.
        directions: (N, 3) unit directions toward where each photon came from.
        powers: (N, 3) photon powers.
        radius: Search radius the grid was built for.
        origin: Lower corner of the grid.
        cell_size: (3,) cell extent per axis.
        resolution: (3,) number of cells per axis.
    """

    def __init__(self, positions: np.ndarray, directions: np.ndarray, powers: np.ndarray, radius: float):
        self.radius = float(radius)
        n = len(positions)

        if n > 0:
            lo = positions.min(axis=0)
            hi = positions.max(axis=0)
        else:
            lo = np.zeros(3, dtype=np.float32)
            hi = np.zeros(3, dtype=np.float32)
        extent = np.maximum(hi - lo, 1e-6)
        # cells no smaller than the radius, and no more than MAX_GRID_RES per axis
        cell = np.maximum(np.full(3, self.radius), extent / MAX_GRID_RES)
        resolution = np.clip(np.ceil(extent / cell).astype(np.int64), 1, MAX_GRID_RES)

        self.origin = lo.astype(np.float32)
        self.cell_size = cell.astype(np.float32)
        self.resolution = resolution.astype(np.int32)

        cells = self._cell_coords(positions)
        linear = (cells[:, 0] * resolution[1] + cells[:, 1]) * resolution[2] + cells[:, 2]
        order = np.argsort(linear, kind="stable")
        linear = linear[order]

        self.positions = np.ascontiguousarray(positions[order], dtype=np.float32)
        self.directions = np.ascontiguousarray(directions[order], dtype=np.float32)
        self.powers = np.ascontiguousarray(powers[order], dtype=np.float32)
        for arr in (self.positions, self.directions, self.powers):
            arr.flags.writeable = False

        total_cells = int(np.prod(resolution))
        counts = np.bincount(linear, minlength=total_cells).astype(np.int32)
        starts = np.zeros(total_cells, dtype=np.int32)
        starts[1:] = np.cumsum(counts)[:-1]
        self._starts = starts.reshape(tuple(resolution))
        self._counts = counts.reshape(tuple(resolution))
        self._starts.flags.writeable = False
        self._counts.flags.writeable = False

        self._upload()
        logger.info(
            "photon map: %d photons, grid %s, radius %g",
            n,
            "x".join(str(int(r)) for r in resolution),
            self.radius,
        )

    def __len__(self) -> int:
        return len(self.positions)

    def _cell_coords(self, points: np.ndarray) -> np.ndarray:
        coords = np.floor((points - self.origin) / self.cell_size).astype(np.int64)
        return np.clip(coords, 0, self.resolution.astype(np.int64) - 1)

    def _upload(self) -> None:
        n = len(self)
        for field, data in (
            (map_positions, self.positions),
            (map_directions, self.directions),
            (map_powers, self.powers),
        ):
            buf = np.zeros((MAX_PHOTONS, 3), dtype=np.float32)
            buf[:n] = data
            field.from_numpy(buf)

        rx, ry, rz = (int(r) for r in self.resolution)
        starts = np.zeros((MAX_GRID_RES,) * 3, dtype=np.int32)
        counts = np.zeros((MAX_GRID_RES,) * 3, dtype=np.int32)
        starts[:rx, :ry, :rz] = self._starts
        counts[:rx, :ry, :rz] = self._counts
        cell_start.from_numpy(starts)
        cell_count.from_numpy(counts)

        grid_origin[None] = self.origin.tolist()
        grid_cell_size[None] = self.cell_size.tolist()
        grid_resolution[None] = [rx, ry, rz]
        map_photon_count[None] = n

    def query(self, point, radius: float | None = None) -> np.ndarray:
        """Indices of all photons with ``|p - point|^2 <= radius^2``.

        Args:
            point: Query position.
            radius: Search radius; defaults to the radius the map was built for.

        Returns:
            Sorted int64 indices into positions/directions/powers.
        """
        r = self.radius if radius is None else float(radius)
        p = np.asarray(point, dtype=np.float32)
        if len(self) == 0 or r < 0.0:
            return np.zeros(0, dtype=np.int64)

        lo = self._cell_coords((p - r)[None, :])[0]
        hi = self._cell_coords((p + r)[None, :])[0]
        found = []
        for ix in range(lo[0], hi[0] + 1):
            for iy in range(lo[1], hi[1] + 1):
                for iz in range(lo[2], hi[2] + 1):
                    start = int(self._starts[ix, iy, iz])
                    count = int(self._counts[ix, iy, iz])
                    if count == 0:
                        continue
                    idx = np.arange(start, start + count)
                    d = self.positions[idx] - p
                    found.append(idx[np.einsum("ij,ij->i", d, d) <= r * r])
        if not found:
            return np.zeros(0, dtype=np.int64)
        return np.sort(np.concatenate(found))


def auto_photon_radius(bounds_min, bounds_max) -> float:
    """Default search radius: the bounding-box diagonal divided by 500."""
    diagonal = math.dist(tuple(bounds_min), tuple(bounds_max))
    return diagonal / 500.0


# =============================================================================
# Kernel-Side Queries
# =============================================================================


@ti.func
def cell_range(point: vec3, radius: ti.f32):
    origin = grid_origin[None]
    cell = grid_cell_size[None]
    res = grid_resolution[None]
    lo_f = ti.floor((point - radius - origin) / cell)
    hi_f = ti.floor((point + radius - origin) / cell)
    lo = ti.Vector([0, 0, 0])
    hi = ti.Vector([0, 0, 0])
    for k in ti.static(range(3)):
        lo[k] = ti.max(0, ti.min(ti.cast(lo_f[k], ti.i32), res[k] - 1))
        hi[k] = ti.max(0, ti.min(ti.cast(hi_f[k], ti.i32), res[k] - 1))
    return lo, hi


@ti.func
def count_photons_in_radius(point: vec3, radius: ti.f32) -> ti.i32:
    """Number of stored photons within ``radius`` of ``point``."""
    total = 0
    if map_photon_count[None] > 0:
        lo, hi = cell_range(point, radius)
        r2 = radius * radius
        for ix in range(lo[0], hi[0] + 1):
            for iy in range(lo[1], hi[1] + 1):
                for iz in range(lo[2], hi[2] + 1):
                    start = cell_start[ix, iy, iz]
                    for j in range(start, start + cell_count[ix, iy, iz]):
                        d = map_positions[j] - point
                        if tm.dot(d, d) <= r2:
                            total += 1
    return total
