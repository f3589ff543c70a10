"""
Provider payload normalization tests.
"""

from src.adapters.normalize import (
    as_number,
    extract_request_id,
    extract_total,
    is_done,
    normalize_tours,
)


def test_request_id_top_level_json():
    assert extract_request_id('{"requestid": "123"}') == "123"


def test_request_id_nested_json():
    assert extract_request_id('{"result": {"requestId": 456}}') == "456"


def test_request_id_xml():
    assert extract_request_id("<result><requestid> 789 </requestid></result>") == "789"


def test_request_id_missing():
    assert extract_request_id("nothing here") is None


def test_done_flags():
    assert is_done({"finished": True})
    assert is_done({"data": {"status": {"state": "finished"}}})
    assert not is_done({"status": "searching"})
    assert not is_done({})


def test_total_nested_and_invalid():
    assert extract_total({"data": {"hotelsfound": "12"}}) == 12
    assert extract_total({"total": -1}) is None
    assert extract_total({}) is None


def test_as_number_coercion():
    assert as_number("12,5") == 12.5
    assert as_number(True) == 0
    assert as_number("abc", None) is None
    assert as_number(float("nan"), None) is None


def test_alternate_keys_are_mapped():
    payload = {
        "data": {
            "hotels": [
                {
                    "cost": "95000",
                    "hotelcode": "77",
                    "hotelname": "Sea Breeze",
                    "star": "4",
                    "hotelrating": "4.3",
                    "flydate": "2026-06-05",
                    "duration": 7,
                    "operatorname": "Anex",
                    "regionname": "Kemer",
                    "countryname": "Turkey",
                    "picturelink": "https://example.test/1.jpg",
                },
            ]
        }
    }
    [tour] = normalize_tours(payload)
    assert tour.price == 95_000
    assert tour.hotel_id == 77
    assert tour.hotel_name == "Sea Breeze"
    assert tour.stars == 4
    assert tour.rating == 4.3
    assert tour.nights == 7
    assert tour.region == "Kemer"
    assert tour.currency == "RUB"
    assert tour.image_url == "https://example.test/1.jpg"


def test_items_without_price_or_hotel_are_dropped():
    payload = {"results": [
        {"price": 0, "hotel_id": 1},
        {"price": 1000, "hotel_id": None},
        {"price": 1000, "hotel_id": 2},
        "not a dict",
    ]}
    tours = normalize_tours(payload)
    assert [t.hotel_id for t in tours] == [2]


def test_unparseable_payload_is_empty():
    assert normalize_tours({"raw": "<html>oops</html>"}) == []
