from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from loguru import logger

from swingfit.config import DATA_DIR
from swingfit.exceptions import CatalogError
from swingfit.models import ClubHead, EquipmentCatalog, Shaft

DEFAULT_CATALOG_PATH = DATA_DIR / "catalog.yaml"

HEAD_TYPES = {'driver', 'fairway', 'iron', 'wedge', 'putter'}
FLEXES = {'L', 'A', 'R', 'S', 'X'}
KICK_POINTS = {'low', 'mid', 'high'}


def _require(row: Dict[str, Any], keys, kind: str) -> None:
    missing = [key for key in keys if key not in row]
    if missing:
        raise CatalogError(f"{kind} {row.get('id', '?')} is missing {', '.join(missing)}")


def parse_head(row: Dict[str, Any]) -> ClubHead:
    _require(row, ('id', 'name', 'brand', 'type', 'loft', 'price'), "Club head")
    if row['type'] not in HEAD_TYPES:
        raise CatalogError(f"Club head {row['id']} has unknown type {row['type']!r}")

    try:
        return ClubHead(
            id=str(row['id']),
            name=str(row['name']),
            brand=str(row['brand']),
            type=row['type'],
            loft=float(row['loft']),
            characteristics=tuple(row.get('characteristics') or ()),
            price=int(row['price']),
            url=str(row.get('url', ''))
        )
    except (TypeError, ValueError) as e:
        raise CatalogError(f"Club head {row['id']} is invalid: {e}") from e


def parse_shaft(row: Dict[str, Any]) -> Shaft:
    _require(row, ('id', 'name', 'brand', 'flex', 'weight', 'torque', 'kick_point', 'price'), "Shaft")
    if row['flex'] not in FLEXES:
        raise CatalogError(f"Shaft {row['id']} has unknown flex {row['flex']!r}")
    if row['kick_point'] not in KICK_POINTS:
        raise CatalogError(f"Shaft {row['id']} has unknown kick point {row['kick_point']!r}")

    try:
        return Shaft(
            id=str(row['id']),
            name=str(row['name']),
            brand=str(row['brand']),
            flex=row['flex'],
            weight=float(row['weight']),
            torque=float(row['torque']),
            kick_point=row['kick_point'],
            characteristics=tuple(row.get('characteristics') or ()),
            price=int(row['price']),
            url=str(row.get('url', ''))
        )
    except (TypeError, ValueError) as e:
        raise CatalogError(f"Shaft {row['id']} is invalid: {e}") from e


def catalog_from_dict(data: Dict[str, Any]) -> EquipmentCatalog:
    heads = tuple(parse_head(row) for row in data.get('club_heads') or ())
    shafts = tuple(parse_shaft(row) for row in data.get('shafts') or ())
    return EquipmentCatalog(heads=heads, shafts=shafts)


def load_catalog(path: Optional[Union[str, Path]] = None) -> EquipmentCatalog:
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH

    try:
        with open(catalog_path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise CatalogError(f"Failed to load catalog from {catalog_path}: {e}") from e

    if not isinstance(data, dict):
        raise CatalogError(f"Catalog in {catalog_path} must be a mapping")

    catalog = catalog_from_dict(data)
    logger.info(f"Catalog loaded: {len(catalog.heads)} heads, {len(catalog.shafts)} shafts")
    return catalog
