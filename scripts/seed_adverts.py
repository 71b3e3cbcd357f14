#!/usr/bin/env python3
"""Emit deterministic SQL that seeds demo accounts and adverts."""

from __future__ import annotations

import argparse
import uuid
from datetime import datetime, timedelta, timezone

from app.services.slugs import slugify

SEED_NAMESPACE = uuid.UUID("6f1c2d8e-3b57-4c1a-9a52-0f4b7d2e9c11")
SEED_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)

DEMO_ADVERTS: list[dict[str, object]] = [
    {"title": "3D Printer", "description": "Desktop FDM printer, barely used.", "price": "250", "category": "for_sale", "tags": ["work", "lifestyle"]},
    {"title": "Mountain Bike", "description": "Aluminium frame, 29 inch wheels.", "price": "420", "category": "for_sale", "tags": ["lifestyle", "motor"]},
    {"title": "Looking for a Road Bike", "description": "Size 56, any brand.", "price": "300", "category": "wanted", "tags": ["lifestyle"]},
    {"title": "iPhone 12", "description": "128 GB, battery at 89%.", "price": "380", "category": "for_sale", "tags": ["mobile"]},
    {"title": "Office Chair", "description": "Ergonomic mesh chair with lumbar support.", "price": "90", "category": "for_sale", "tags": ["work"]},
    {"title": "Wanted: Vintage Camera", "description": "Film rangefinder in working order.", "price": "150", "category": "wanted", "tags": ["lifestyle"]},
    {"title": "Car Roof Box", "description": "420 litre roof box with keys.", "price": "120", "category": "for_sale", "tags": ["motor"]},
    {"title": "Standing Desk", "description": "Electric height adjustable desk, 140x70.", "price": "260", "category": "for_sale", "tags": ["work"]},
]


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def _array_sql(values: list[str]) -> str:
    if not values:
        return "'{}'::text[]"
    return "array[" + ", ".join(_quote_sql(value) for value in values) + "]::text[]"


def account_id_for(name: str) -> str:
    return str(uuid.uuid5(SEED_NAMESPACE, f"account:{name}"))


def render_sql(*, accounts: int, adverts_per_account: int) -> str:
    lines = [
        "-- Demo catalog seed",
        "-- Safe to re-run: existing rows are left untouched.",
        "",
    ]
    for account_index in range(1, accounts + 1):
        name = f"seller{account_index}"
        lines.append(
            "insert into accounts (id, name, email) values "
            f"({_quote_sql(account_id_for(name))}::uuid, {_quote_sql(name)}, {_quote_sql(f'{name}@example.com')}) "
            "on conflict do nothing;"
        )

    lines.append("")
    sequence = 0
    for account_index in range(1, accounts + 1):
        owner_id = account_id_for(f"seller{account_index}")
        for _ in range(adverts_per_account):
            template = DEMO_ADVERTS[sequence % len(DEMO_ADVERTS)]
            sequence += 1
            title = f"{template['title']} #{sequence}"
            advert_id = str(uuid.uuid5(SEED_NAMESPACE, f"advert:{sequence}"))
            published_at = SEED_EPOCH + timedelta(hours=sequence)
            lines.append(
                "insert into adverts "
                "(id, title, image_ref, description, price, category, tags, owner_id, published_at, slug, status) values "
                f"({_quote_sql(advert_id)}::uuid, {_quote_sql(title)}, {_quote_sql(f'seed-{sequence}.jpg')}, "
                f"{_quote_sql(str(template['description']))}, {template['price']}, {_quote_sql(str(template['category']))}, "
                f"{_array_sql(list(template['tags']))}, {_quote_sql(owner_id)}::uuid, "
                f"{_quote_sql(published_at.isoformat())}::timestamptz, {_quote_sql(slugify(title))}, 'available') "
                "on conflict do nothing;"
            )
    lines.append("")
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL that seeds demo accounts and adverts.")
    parser.add_argument("--accounts", type=int, default=10, help="Number of demo accounts")
    parser.add_argument("--adverts-per-account", type=int, default=3, help="Adverts created for each account")
    args = parser.parse_args()

    if args.accounts < 1 or args.adverts_per_account < 0:
        parser.error("--accounts must be >= 1 and --adverts-per-account must be >= 0")

    print(render_sql(accounts=args.accounts, adverts_per_account=args.adverts_per_account))


if __name__ == "__main__":
    main()
