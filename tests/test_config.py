from projectbrowser.config.settings import Config


def test_update_applies_known_settings():
    settings = Config()

    applied = settings.update({
        "lock_grace_minutes": 3,
        "enabled_sources": "static_catalog, drupalorg_jsonapi",
        "allow_ui_install": True,
    })

    assert sorted(applied) == ["allow_ui_install", "enabled_sources", "lock_grace_minutes"]
    assert settings.lock_grace_minutes == 3
    assert settings.enabled_sources == ["static_catalog", "drupalorg_jsonapi"]
    assert settings.allow_ui_install is True


def test_update_ignores_unknown_and_private_keys():
    settings = Config()

    applied = settings.update({"nope": 1, "_secret": 2, "update": 3})

    assert applied == []
    assert not hasattr(settings, "nope")
    assert callable(settings.update)
