"""Tests for Redis caching of the doctor roster."""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.schemas.doctors import DoctorCreate
from clinic_scheduler.services.doctor_service import DoctorService


def dict_backed_redis() -> MagicMock:
    """MagicMock Redis that keeps values in a dict."""
    store: dict[str, str] = {}
    mock_redis = MagicMock()
    mock_redis.store = store
    mock_redis.get.side_effect = store.get
    mock_redis.set.side_effect = lambda key, value: store.__setitem__(key, value)
    mock_redis.setex.side_effect = lambda key, ttl, value: store.__setitem__(key, value)
    mock_redis.delete.side_effect = lambda *keys: sum(store.pop(k, None) is not None for k in keys)
    return mock_redis


def test_cache_manager_get_json():
    """Test CacheManager get_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    # Test cache miss
    mock_redis.get.return_value = None
    assert cache_manager.get_json("test_key") is None

    # Test cache hit
    mock_redis.get.return_value = '{"name": "Dr. A", "specialties": ["Cardiology"]}'
    assert cache_manager.get_json("test_key") == {"name": "Dr. A", "specialties": ["Cardiology"]}


def test_cache_manager_set_json():
    """Test CacheManager set_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.set_json("test_key", {"id": uuid4()}) is True
    mock_redis.set.assert_called_once()

    mock_redis.reset_mock()
    assert cache_manager.set_json("test_key", {"value": 1}, ttl=300) is True
    mock_redis.setex.assert_called_once_with("test_key", 300, '{"value": 1}')


def test_cache_manager_errors_are_misses():
    """Redis failures degrade to cache misses."""
    mock_redis = MagicMock()
    mock_redis.get.side_effect = ConnectionError("redis down")
    mock_redis.setex.side_effect = ConnectionError("redis down")
    mock_redis.delete.side_effect = ConnectionError("redis down")
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.get_json("test_key") is None
    assert cache_manager.set_json("test_key", {}, ttl=10) is False
    assert cache_manager.delete("test_key") is False


@pytest.mark.asyncio
async def test_doctor_lookup_is_cached(storage, clock, clinic_id):
    mock_redis = dict_backed_redis()
    service = DoctorService(storage, CacheManager(mock_redis), clock)
    doctor = await service.create_doctor(
        DoctorCreate(clinic_id=clinic_id, name="Dr. A", specialties=["Cardiology"])
    )

    assert await service.get_doctor(doctor.id) == doctor
    assert f"doctor:{doctor.id}" in mock_redis.store

    # Served from the cache even once the row is gone
    storage.doctors.rows.clear()
    assert await service.get_specialties(doctor.id) == ["Cardiology"]


@pytest.mark.asyncio
async def test_new_doctor_invalidates_roster(storage, clock, clinic_id):
    mock_redis = dict_backed_redis()
    service = DoctorService(storage, CacheManager(mock_redis), clock)
    await service.create_doctor(
        DoctorCreate(clinic_id=clinic_id, name="Dr. A", specialties=["Cardiology"])
    )

    assert len(await service.list_doctors(clinic_id)) == 1
    assert f"doctor:list:{clinic_id}" in mock_redis.store

    await service.create_doctor(
        DoctorCreate(clinic_id=clinic_id, name="Dr. B", specialties=["Dermatology"])
    )

    assert f"doctor:list:{clinic_id}" not in mock_redis.store
    assert [d.name for d in await service.list_doctors(clinic_id)] == ["Dr. A", "Dr. B"]


@pytest.mark.asyncio
async def test_unknown_doctor_specialties(doctor_service):
    assert await doctor_service.get_specialties(uuid4()) is None
