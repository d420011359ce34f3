# Insert Sample Sites
from sqlmodel import Session, select

from db.session import engine
from models.site import Site
from services.site_registry import SiteRegistry

SAMPLE_SITES = [
    {"name": "Location A", "external_map_link": "https://maps.google.com/?q=40.7128,-74.0060"},
    {"name": "Location B", "external_map_link": "https://maps.google.com/?q=37.7749,-122.4194"},
    {"name": "Location C", "external_map_link": "https://maps.google.com/?q=34.0522,-118.2437"},
    {"name": "Location D", "external_map_link": "https://maps.google.com/?q=51.5074,-0.1278"},
]


def seed_sites():
    with Session(engine) as session:
        existing = set(session.exec(select(Site.name)).all())

        for sample in SAMPLE_SITES:
            if sample["name"] in existing:
                print(f"{sample['name']} already exists")
                continue
            # Coordinates are parsed out of the map link
            SiteRegistry.create(session, actor="seed", **sample)
            print(f"Added {sample['name']}")


if __name__ == "__main__":
    from sqlmodel import SQLModel

    import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    seed_sites()
