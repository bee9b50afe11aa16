from villa_api import seed
from villa_api.models.user import User
from villa_api.models.villa import Villa


def test_seed_is_idempotent(db):
    seed.run(db)
    seed.run(db)
    assert db.query(Villa).count() == len(seed.VILLAS)
    assert db.query(User).filter(User.email == "admin@villas.local").one().role == "admin"
    assert db.query(Villa).filter(Villa.slug == "coral-cove").one().price_per_night == 50000


def test_public_villa_listing(client, db):
    seed.run(db)
    everyone = client.get("/api/v1/public/villas").json()
    assert len(everyone) == len(seed.VILLAS)

    big = client.get("/api/v1/public/villas", params={"guests": 10}).json()
    assert {v["slug"] for v in big} == {"sandy-lane-estate", "gustavia-heights"}

    barbados = client.get("/api/v1/public/villas", params={"location": "barbados"}).json()
    assert {v["slug"] for v in barbados} == {"sandy-lane-estate", "coral-cove"}

    coral = client.get("/api/v1/public/villas/coral-cove").json()
    assert coral["pricePerNight"] == 500.0
    assert coral["maxGuests"] == 6
    assert client.get("/api/v1/public/villas/unknown").status_code == 404


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
