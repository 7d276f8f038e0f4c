from sqlalchemy.orm import Session

from ..models import Monitor, StatusPage


def seed_initial_data(db: Session) -> None:
    """Seed a demo status page and monitor if tables are empty."""
    if db.query(StatusPage).count() == 0:
        page = StatusPage(
            slug="demo",
            title="Demo Status",
            description="Example status page created on first start.",
        )
        db.add(page)
        db.flush()  # so page.id is available

        if db.query(Monitor).count() == 0:
            m = Monitor(
                name="Example site",
                slug="example",
                kind="HTTP",
                target="https://example.com",
                check_interval_sec=60,
                timeout_sec=5,
                enabled=True,
                status_page_id=page.id,
            )
            db.add(m)

    db.commit()
