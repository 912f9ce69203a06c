from muvi_rec.database import MemoryStore
from muvi_rec.models import MediaKind
from muvi_rec.settings import SettingsStore


def test_featured_pin_lifecycle():
    settings = SettingsStore(MemoryStore())
    assert settings.get_featured() is None

    settings.pin_featured(603)
    assert settings.get_featured() == (603, None)

    settings.pin_featured("1396", "tv")
    assert settings.get_featured() == (1396, MediaKind.SHOW)

    settings.clear_featured()
    assert settings.get_featured() is None


def test_pin_is_shared_through_the_store():
    store = MemoryStore()
    SettingsStore(store).pin_featured(5, MediaKind.MOVIE)
    assert SettingsStore(store).get_featured() == (5, MediaKind.MOVIE)


def test_lockdown_and_announcement():
    settings = SettingsStore(MemoryStore())
    assert not settings.is_locked()
    assert settings.get_announcement() is None

    settings.set_lockdown(True, "Back soon")
    settings.set_announcement("New episodes every Friday")
    assert settings.is_locked()
    assert settings.lockdown_message() == "Back soon"
    assert settings.get_announcement() == "New episodes every Friday"

    settings.set_lockdown(False)
    settings.set_announcement(None)
    assert not settings.is_locked()
    assert settings.get_announcement() is None
