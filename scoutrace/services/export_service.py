"""Admin listings and CSV exports."""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import ErrorKind, Failure, fail
from ..models import PaymentStatus
from ..storage import DatabaseError, DatabaseInterface
from ..types import ListingPageDict
from ..utils.csv_export import CSVBuilder

logger = logging.getLogger(__name__)

ENTITIES = ("teams", "leaders", "units", "registrations")

# Fixed French headers, in column order
CSV_COLUMNS: Dict[str, List[Tuple[str, str]]] = {
    "registrations": [
        ("id", "N° inscription"),
        ("createdAt", "Date d'inscription"),
        ("raceName", "Course"),
        ("unitName", "Unité"),
        ("region", "Région"),
        ("lastName", "Nom du responsable"),
        ("firstName", "Prénom du responsable"),
        ("email", "Email"),
        ("phone", "Téléphone"),
        ("teamCount", "Nombre d'équipes"),
        ("totalParticipants", "Nombre de participants"),
        ("totalPrice", "Montant total"),
        ("paymentStatus", "Statut du paiement"),
        ("paidAt", "Date de paiement"),
    ],
    "teams": [
        ("id", "N° équipe"),
        ("teamName", "Nom de l'équipe"),
        ("participantCount", "Nombre de participants"),
        ("raceName", "Course"),
        ("unitName", "Unité"),
        ("region", "Région"),
        ("registrationId", "N° inscription"),
        ("paymentStatus", "Statut du paiement"),
        ("createdAt", "Date d'inscription"),
    ],
    "leaders": [
        ("id", "N° responsable"),
        ("lastName", "Nom"),
        ("firstName", "Prénom"),
        ("email", "Email"),
        ("phone", "Téléphone"),
        ("unitName", "Unité"),
        ("region", "Région"),
        ("createdAt", "Date de création"),
    ],
    "units": [
        ("id", "N° unité"),
        ("unitName", "Unité"),
        ("region", "Région"),
        ("registrationCount", "Nombre d'inscriptions"),
        ("createdAt", "Date de création"),
    ],
}

STATUS_LABELS = {
    PaymentStatus.PENDING.value: "En attente",
    PaymentStatus.PAID.value: "Payé",
}


def _jsonable(row: Dict[str, Any]) -> Dict[str, Any]:
    # Amounts leave the service as strings so no float conversion happens
    return {k: (f"{v:.2f}" if isinstance(v, Decimal) else v) for k, v in row.items()}


class ExportService:
    """Filtered, paginated listings of stored entities."""

    EXPORT_BATCH = 500

    def __init__(self, db: DatabaseInterface, max_page_size: int = 200):
        self.db = db
        self.max_page_size = max_page_size

    def list(
        self,
        entity: str,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        page_size: int = 50,
        sort: Optional[str] = None,
        order: str = "asc"
    ) -> Union[ListingPageDict, Failure]:
        """
        One page of an entity listing.

        Returns:
            {'items', 'page', 'pageSize', 'total'} or a Failure
        """
        if entity not in ENTITIES:
            return fail(ErrorKind.NOT_FOUND, entity=entity)

        page = max(1, page)
        page_size = min(max(1, page_size), self.max_page_size)
        try:
            rows, total = self.db.list_entities(entity, filters or {}, page, page_size, sort, order)
        except DatabaseError:
            logger.exception(f"Listing {entity} failed")
            return fail(ErrorKind.INTERNAL)

        return {
            "items": [_jsonable(r) for r in rows],
            "page": page,
            "pageSize": page_size,
            "total": total,
        }

    def export_csv(
        self,
        entity: str,
        filters: Optional[Dict[str, Any]] = None,
        sort: Optional[str] = None,
        order: str = "asc"
    ) -> Union[str, Failure]:
        """Every matching row as a CSV document with French headers."""
        if entity not in ENTITIES:
            return fail(ErrorKind.NOT_FOUND, entity=entity)

        builder = CSVBuilder(CSV_COLUMNS[entity])
        page = 1
        try:
            while True:
                rows, total = self.db.list_entities(
                    entity, filters or {}, page, self.EXPORT_BATCH, sort, order
                )
                for row in rows:
                    if "paymentStatus" in row:
                        row["paymentStatus"] = STATUS_LABELS.get(row["paymentStatus"], row["paymentStatus"])
                builder.add_rows(rows)
                if page * self.EXPORT_BATCH >= total or not rows:
                    break
                page += 1
        except DatabaseError:
            logger.exception(f"CSV export of {entity} failed")
            return fail(ErrorKind.INTERNAL)

        logger.info(f"Exported {len(builder.rows)} {entity} rows to CSV")
        return builder.build()
