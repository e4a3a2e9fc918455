"""
Read-only store of presence/absence grids and the co-occurrence filter.

The store is the single source of grids for every analysis stage. All grid
consistency checks happen once, at construction: after that any two grids
taken from the same store can be combined cell by cell.

Usage:
    store = RasterStore.from_directory("data/sdm", "data/cooccurrence.csv")
    grid = store.get_presence("Pinus contorta", "future")
"""

import os
from types import MappingProxyType

import numpy as np
import pandas as pd
import rasterio

from mycoshift import config
from mycoshift.errors import InconsistentGridError, NotFoundError
from mycoshift.grid import GridGeometry, PresenceGrid, Scenario, SpeciesId, Taxon
from mycoshift.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


class RasterStore:
    """Validated, immutable collection of presence grids.

    Parameters
    ----------
    grids : dict
        Maps ``(name, taxon, scenario)`` to a 2-D array in {0, 1, NaN}.
        ``taxon`` is "tree"/"fungus" (or Taxon); ``scenario`` is
        "current"/"future" (or Scenario).
    geometry : GridGeometry
        Geometry shared by every grid.
    cooccurrence : dict
        Maps tree name → iterable of fungus names observed with it.
    cell_area : np.ndarray, optional
        Per-cell ground area in km². Computed from *geometry* when omitted.

    Raises
    ------
    InconsistentGridError
        If any array or the cell-area layer does not match *geometry*.
    NotFoundError
        If the co-occurrence filter names an unknown tree or fungus.
    ValueError
        If a grid holds values other than 0, 1 and NoData, or a name is used
        for both a tree and a fungus.
    """

    def __init__(self, grids, geometry, cooccurrence, cell_area=None):
        self._geometry = geometry
        self._grids = {}
        taxa = {}

        for (name, taxon, scenario), values in grids.items():
            taxon = Taxon(taxon)
            scenario = Scenario(scenario)
            if taxa.setdefault(name, taxon) != taxon:
                raise ValueError(
                    f"Species name '{name}' is used for both a tree and a fungus"
                )
            species = SpeciesId(name, taxon)
            self._grids[(species, scenario)] = PresenceGrid(
                species, scenario, values, geometry,
            )

        self._species = {name: SpeciesId(name, taxon) for name, taxon in taxa.items()}

        if cell_area is None:
            cell_area = geometry.cell_area()
        cell_area = np.array(cell_area, dtype="float64", copy=True)
        if cell_area.shape != geometry.shape:
            raise InconsistentGridError(
                f"Cell-area layer shape {cell_area.shape} does not match "
                f"grid {geometry.shape}"
            )
        cell_area.setflags(write=False)
        self._cell_area = cell_area

        cooc = {}
        for tree_name, fungus_names in cooccurrence.items():
            tree = self.resolve(tree_name, Taxon.TREE)
            cooc[tree] = frozenset(
                self.resolve(f, Taxon.FUNGUS) for f in fungus_names
            )
        self._cooccurrence = cooc

        log.info(
            "Raster store ready: %d trees, %d fungi, %d grids, grid %dx%d",
            len(self.trees), len(self.fungi), len(self._grids),
            geometry.height, geometry.width,
        )

    # ── Construction from files ──────────────────────────────────────────

    @classmethod
    def from_directory(cls, data_dir, cooccurrence_csv, cell_area_path=None):
        """Load GeoTIFF presence grids and a co-occurrence CSV.

        Layout::

            <data_dir>/trees/<species>__<scenario>.tif
            <data_dir>/fungi/<species>__<scenario>.tif

        The CSV has columns ``tree`` and ``fungus``, one row per observed pair.
        Raster nodata values are read as NaN.
        """
        grids = {}
        geometry = None
        for taxon, subdir in config.TAXON_DIRS.items():
            taxon_dir = os.path.join(data_dir, subdir)
            if not os.path.isdir(taxon_dir):
                log.warning("No %s directory at %s", taxon, taxon_dir)
                continue
            for fname in sorted(os.listdir(taxon_dir)):
                if not fname.endswith(config.RASTER_SUFFIX):
                    continue
                stem = fname[: -len(config.RASTER_SUFFIX)]
                name, sep, scenario = stem.rpartition(config.RASTER_NAME_SEPARATOR)
                if not sep or scenario not in config.SCENARIOS:
                    log.warning("Skipping unrecognised raster name: %s", fname)
                    continue
                values, file_geometry = read_presence_raster(
                    os.path.join(taxon_dir, fname)
                )
                if geometry is None:
                    geometry = file_geometry
                else:
                    geometry.require_match(file_geometry, context=fname)
                grids[(name, taxon, scenario)] = values

        if geometry is None:
            raise NotFoundError(f"No presence rasters found under {data_dir}")

        cooccurrence = read_cooccurrence_csv(cooccurrence_csv)

        cell_area = None
        if cell_area_path is not None:
            cell_area, area_geometry = read_cell_area_raster(cell_area_path)
            geometry.require_match(area_geometry, context="cell-area layer")

        return cls(grids, geometry, cooccurrence, cell_area=cell_area)

    # ── Lookup ───────────────────────────────────────────────────────────

    @property
    def geometry(self):
        return self._geometry

    @property
    def cell_area(self):
        """Read-only per-cell ground area in km²."""
        return self._cell_area

    @property
    def trees(self):
        return tuple(sorted(s for s in self._species.values() if s.taxon == Taxon.TREE))

    @property
    def fungi(self):
        return tuple(sorted(s for s in self._species.values() if s.taxon == Taxon.FUNGUS))

    @property
    def cooccurrence(self):
        return MappingProxyType(self._cooccurrence)

    def resolve(self, species, taxon=None):
        """Return the catalog SpeciesId for a name or id.

        Raises
        ------
        NotFoundError
            If the name is not in the catalog or has the wrong taxon.
        """
        name = species.name if isinstance(species, SpeciesId) else species
        found = self._species.get(name)
        if found is None:
            raise NotFoundError(f"Unknown species: '{name}'")
        if isinstance(species, SpeciesId) and species != found:
            raise NotFoundError(f"Species '{name}' is a {found.taxon.value}, "
                                f"not a {species.taxon.value}")
        if taxon is not None and found.taxon != Taxon(taxon):
            raise NotFoundError(
                f"Species '{name}' is a {found.taxon.value}, not a {Taxon(taxon).value}"
            )
        return found

    def get_presence(self, species, scenario):
        """Presence grid for one species under one scenario.

        Raises
        ------
        NotFoundError
            If the species or the species/scenario combination is absent.
        """
        species = self.resolve(species)
        scenario = Scenario(scenario)
        grid = self._grids.get((species, scenario))
        if grid is None:
            raise NotFoundError(
                f"No {scenario.value} presence grid for '{species.name}'"
            )
        return grid

    def get_cooccurring_fungi(self, tree):
        """Fungi empirically observed with *tree* (empty if none recorded)."""
        tree = self.resolve(tree, Taxon.TREE)
        return self._cooccurrence.get(tree, frozenset())

    def cooccurring_pairs(self, trees=None):
        """Sorted (tree, fungus) pairs allowed by the co-occurrence filter."""
        if trees is None:
            trees = self.trees
        pairs = []
        for tree in trees:
            tree = self.resolve(tree, Taxon.TREE)
            pairs.extend((tree, f) for f in sorted(self.get_cooccurring_fungi(tree)))
        return pairs


def _read_band(path, dtype):
    with rasterio.open(path) as src:
        data = src.read(1, masked=True).astype(dtype).filled(np.nan)
        geometry = GridGeometry(
            transform=src.transform,
            width=src.width,
            height=src.height,
            crs=src.crs.to_string() if src.crs else "EPSG:4326",
        )
    return data, geometry


def read_presence_raster(path):
    """Read band 1 of a raster as float32 with nodata → NaN.

    Returns
    -------
    tuple[np.ndarray, GridGeometry]
    """
    return _read_band(path, "float32")


def read_cell_area_raster(path):
    """Read a per-cell area layer (km²) at full float64 precision, nodata → NaN.

    Returns
    -------
    tuple[np.ndarray, GridGeometry]
    """
    return _read_band(path, "float64")


def read_cooccurrence_csv(path):
    """Read a two-column tree/fungus pair table into a dict of sets."""
    tree_col, fungus_col = config.COOCCURRENCE_COLUMNS
    df = pd.read_csv(path)
    missing = {tree_col, fungus_col} - set(df.columns)
    if missing:
        raise ValueError(f"Co-occurrence table {path} missing columns: {sorted(missing)}")

    df = df.dropna(subset=[tree_col, fungus_col]).copy()
    df[tree_col] = df[tree_col].astype(str).str.strip()
    df[fungus_col] = df[fungus_col].astype(str).str.strip()
    df = df.drop_duplicates(subset=[tree_col, fungus_col])

    cooccurrence = {}
    for tree, group in df.groupby(tree_col, sort=True):
        cooccurrence[tree] = set(group[fungus_col])
    log.info("Loaded co-occurrence filter: %d trees, %d pairs",
             len(cooccurrence), len(df))
    return cooccurrence


def range_size_table(store):
    """Present-cell count and area per species and scenario.

    Returns
    -------
    pd.DataFrame
        Columns: species_id, taxon, current_cells, future_cells,
        current_km2, future_km2, pct_change. ``pct_change`` is NaN when the
        current range is empty or a scenario grid is missing.
    """
    rows = []
    for species in store.trees + store.fungi:
        row = {"species_id": species.name, "taxon": species.taxon.value}
        for scenario in Scenario:
            try:
                grid = store.get_presence(species, scenario)
            except NotFoundError:
                row[f"{scenario.value}_cells"] = np.nan
                row[f"{scenario.value}_km2"] = np.nan
                continue
            row[f"{scenario.value}_cells"] = grid.n_present
            row[f"{scenario.value}_km2"] = float(store.cell_area[grid.present].sum())
        rows.append(row)

    df = pd.DataFrame(rows, columns=[
        "species_id", "taxon", "current_cells", "future_cells",
        "current_km2", "future_km2",
    ])
    current = df["current_km2"].where(df["current_km2"] > 0)
    df["pct_change"] = (df["future_km2"] - current) / current * 100
    return df
