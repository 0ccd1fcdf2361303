"""Demo physician and benefit catalog loaded into fresh stores."""

import logging
from uuid import UUID

from .models import Region

log = logging.getLogger("achepoints.seed")

DEMO_PHYSICIAN_ID = "550e8400-e29b-41d4-a716-446655440000"

DEMO_PHYSICIAN = {
    "id": DEMO_PHYSICIAN_ID,
    "name": "Dr. Carlos Drummond de Andrade",
    "region": Region.NORMAL,
}

DEMO_BENEFITS = [
    {
        "id": UUID("11111111-1111-1111-1111-111111111111"),
        "name": "Vale-Presente Cacau Show",
        "description": "Vale-presente de R$50 para utilização em lojas Cacau Show",
        "category": "alimentacao",
        "cost": 50,
    },
    {
        "id": UUID("22222222-2222-2222-2222-222222222222"),
        "name": "Assinatura Netflix (1 mês)",
        "description": "Um mês de assinatura Netflix padrão",
        "category": "entretenimento",
        "cost": 30,
    },
    {
        "id": UUID("33333333-3333-3333-3333-333333333333"),
        "name": "Vale-Compras Supermercado",
        "description": "Vale-compras de R$100 para utilização em supermercados parceiros",
        "category": "mercado",
        "cost": 100,
    },
    {
        "id": UUID("44444444-4444-4444-4444-444444444444"),
        "name": "Assinatura Spotify (1 mês)",
        "description": "Um mês de assinatura Spotify Premium",
        "category": "entretenimento",
        "cost": 20,
    },
    {
        "id": UUID("55555555-5555-5555-5555-555555555555"),
        "name": "Vale-Presente Amazon",
        "description": "Vale-presente de R$25 para utilização na Amazon",
        "category": "varejo",
        "cost": 1,
    },
    {
        "id": UUID("66666666-6666-6666-6666-666666666666"),
        "name": "Vale-Combustível",
        "description": "Vale-combustível de R$50 para utilização em postos parceiros",
        "category": "transporte",
        "cost": 50,
    },
]


def seed_demo_data(storage) -> None:
    """Insert the demo rows, skipping any that already exist."""
    with storage.transaction() as tx:
        if tx.get_physician(DEMO_PHYSICIAN_ID) is None:
            tx.add_physician(**DEMO_PHYSICIAN)
        for benefit in DEMO_BENEFITS:
            if tx.get_benefit(benefit["id"]) is None:
                tx.add_benefit(**benefit)
    log.info("Seeded demo data: 1 physician, %d benefits", len(DEMO_BENEFITS))
