"""
Vehicle Repository

Read-only access to the car_stock inventory, including pgvector
similarity search.
"""

from typing import List, Sequence

from core.base_repository import BaseRepository
from core.utils.logging_config import get_logger
from ..models import Vehicle

logger = get_logger('autocrm.sales_bot.repo.vehicle')

_VEHICLE_COLUMNS = '''
    id::text AS id, marca, modelo, version, motor, transmision, color,
    kilometros, matricula, type, description, image_url, url,
    precio_venta, vendido
'''


class VehicleRepository(BaseRepository):
    """Repository for inventory vehicles."""

    def search_similar(self, embedding: List[float], limit: int = 5) -> List[Vehicle]:
        """Top unsold vehicles by cosine similarity, best first."""
        rows = self.query_all(f'''
            SELECT {_VEHICLE_COLUMNS},
                   1 - (embedding <=> %s::vector) AS similarity
            FROM car_stock
            WHERE vendido = FALSE AND embedding IS NOT NULL
            ORDER BY embedding <=> %s::vector
            LIMIT %s
        ''', (embedding, embedding, limit))

        vehicles = [self._row_to_vehicle(r) for r in rows]
        logger.debug(f"Vehicle search found {len(vehicles)} matches")
        return vehicles

    def get_unsold_by_ids(self, vehicle_ids: Sequence[str]) -> List[Vehicle]:
        """
        Resolve ids against live inventory.

        Sold or missing ids are dropped; the order of `vehicle_ids` is kept.
        Ids are compared as text so malformed ids simply match nothing.
        """
        ids = [str(v) for v in vehicle_ids if v]
        if not ids:
            return []

        rows = self.query_all(f'''
            SELECT {_VEHICLE_COLUMNS}
            FROM car_stock
            WHERE id::text = ANY(%s) AND vendido = FALSE
        ''', (ids,))

        by_id = {r['id']: self._row_to_vehicle(r) for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    def _row_to_vehicle(self, row: dict) -> Vehicle:
        price = row.get('precio_venta')
        images = row.get('image_url') or []
        if isinstance(images, str):
            images = [images]
        return Vehicle(
            id=str(row['id']),
            marca=row.get('marca'),
            modelo=row.get('modelo'),
            version=row.get('version'),
            type=row.get('type'),
            description=row.get('description'),
            precio_venta=float(price) if price is not None else None,
            kilometros=row.get('kilometros'),
            color=row.get('color'),
            motor=row.get('motor'),
            transmision=row.get('transmision'),
            matricula=row.get('matricula'),
            url=row.get('url'),
            image_urls=list(images),
            vendido=bool(row.get('vendido')),
            similarity=float(row['similarity']) if row.get('similarity') is not None else 0.0,
        )
