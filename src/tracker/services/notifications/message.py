"""Arrival notification snapshot and message template."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ...models.domain import Truck

NOT_SPECIFIED = "Non spécifié"

PRODUCT_NAMES = {
    "flour": "Farine",
    "sugar": "Sucre",
    "oil": "Huile",
}


@dataclass(slots=True, frozen=True)
class ArrivalNotification:
    """Truck snapshot taken at the moment its first arrival number was assigned."""

    truck_id: str
    plate_number: str
    arrival_number: Optional[int]
    destination: Optional[str]
    product_type: Optional[str]
    supplier_name: Optional[str]
    cargo_type: Optional[str]
    driver_phone: Optional[str]
    shipped_at: Optional[datetime]
    latitude: Optional[float]
    longitude: Optional[float]
    arrived_at: datetime


def build_arrival_notification(truck: Truck, arrived_at: datetime | None = None) -> ArrivalNotification:
    return ArrivalNotification(
        truck_id=truck.id,
        plate_number=truck.plate_number,
        arrival_number=truck.arrival_number,
        destination=truck.destination,
        product_type=truck.product_type,
        supplier_name=truck.supplier_name,
        cargo_type=truck.cargo_type,
        driver_phone=truck.driver_phone,
        shipped_at=truck.created_at,
        latitude=truck.latitude,
        longitude=truck.longitude,
        arrived_at=arrived_at or truck.last_update or datetime.now(timezone.utc),
    )


def maps_link(latitude: Optional[float], longitude: Optional[float]) -> Optional[str]:
    if latitude is None or longitude is None:
        return None
    return f"https://www.google.com/maps?q={latitude},{longitude}"


def product_label(product_type: Optional[str]) -> str:
    if not product_type:
        return NOT_SPECIFIED
    return PRODUCT_NAMES.get(product_type, product_type)


def render_arrival_message(notification: ArrivalNotification) -> str:
    product = product_label(notification.product_type)
    arrived = notification.arrived_at
    shipped = notification.shipped_at.strftime("%d/%m/%Y") if notification.shipped_at else NOT_SPECIFIED
    lines = [
        "Bonjour Monsieur le Chef du Service Extérieur de l'ONICL,",
        "",
        f"Un camion chargé de {product} est arrivé le {arrived:%d/%m/%Y} à {arrived:%H:%M}.",
        "",
        f"• Numéro d'arrivée : {notification.arrival_number if notification.arrival_number is not None else NOT_SPECIFIED}",
        f"• Commune : {notification.destination or NOT_SPECIFIED}",
        f"• Produit : {product}",
        f"• Marque : {notification.supplier_name or NOT_SPECIFIED}",
        f"• Quantité : {notification.cargo_type or NOT_SPECIFIED}",
        f"• Matricule : {notification.plate_number or NOT_SPECIFIED}",
        f"• Téléphone du chauffeur : {notification.driver_phone or NOT_SPECIFIED}",
        f"• Date d'expédition : {shipped}",
        "",
        "📍 Localisation :",
        maps_link(notification.latitude, notification.longitude) or NOT_SPECIFIED,
    ]
    return "\n".join(lines)
