from beacon.core.seed import seed_initial_data
from beacon.models import Monitor, StatusPage


def test_seed_creates_demo_page_once(db) -> None:
    seed_initial_data(db)
    seed_initial_data(db)

    (page,) = db.query(StatusPage).all()
    assert page.slug == "demo"
    (monitor,) = db.query(Monitor).all()
    assert monitor.status_page_id == page.id
