"""Capability rules per device class and platform."""

import pytest

from devicesync.models.device import DEFAULT_CAPABILITIES, merge_capabilities
from devicesync.services.device_validation import (
    learning_feature_support,
    recommended_capabilities,
    validate_capabilities,
    validate_device,
    validate_metadata,
)

PLATFORM_FOR = {"web": "web", "mobile": "android", "ar": "ios", "vr": "windows"}


def caps(**overrides):
    return merge_capabilities(dict(DEFAULT_CAPABILITIES), overrides)


@pytest.mark.parametrize("device_type", ["web", "mobile", "ar", "vr"])
def test_recommended_capabilities_pass_cleanly(device_type):
    platform = PLATFORM_FOR[device_type]
    caps_ = caps(**recommended_capabilities(device_type))
    if platform == "windows":
        caps_["has_keyboard"] = True
    result = validate_capabilities(device_type, platform, caps_)
    assert result.is_valid, result.errors
    assert result.warnings == []


def test_ar_requires_ar_camera_and_motion():
    result = validate_capabilities("ar", "ios", caps(max_storage_size=500, has_speakers=True))
    assert not result.is_valid
    assert any("AR capabilities" in e for e in result.errors)
    assert any("camera" in e for e in result.errors)
    assert any("motion sensors" in e for e in result.errors)


def test_vr_requires_audio():
    vr = recommended_capabilities("vr")
    vr.update(has_speakers=False, has_microphone=False)
    result = validate_capabilities("vr", "windows", caps(has_keyboard=True, **vr))
    assert result.errors == ["VR devices must have audio capabilities for accessibility"]


def test_mobile_without_gps_only_warns():
    mobile = recommended_capabilities("mobile")
    mobile["has_gps"] = False
    result = validate_capabilities("mobile", "android", caps(**mobile))
    assert result.is_valid
    assert any("GPS" in w for w in result.warnings)


def test_web_needs_an_input_method():
    web = recommended_capabilities("web")
    web["has_keyboard"] = False
    result = validate_capabilities("web", "web", caps(**web))
    assert "Web devices must support keyboard or touch input" in result.errors


def test_web_platform_mismatch_both_ways():
    result = validate_capabilities("mobile", "web", caps(**recommended_capabilities("mobile")))
    assert "Web platform can only be used with web device type" in result.errors

    result = validate_capabilities("web", "linux", caps(**recommended_capabilities("web")))
    assert "Web devices must use the web platform" in result.errors


@pytest.mark.parametrize(
    "storage,is_valid,warned",
    [
        (0, False, False),
        (9, False, False),
        (10, True, True),
        (199, True, True),
        (200, True, False),
    ],
)
def test_storage_floors_for_mobile(storage, is_valid, warned):
    mobile = recommended_capabilities("mobile")
    mobile["max_storage_size"] = storage
    result = validate_capabilities("mobile", "android", caps(**mobile))
    assert result.is_valid is is_valid
    assert any("storage" in w for w in result.warnings) is warned


def test_metadata_is_advisory():
    result = validate_metadata("mobile", {})
    assert result.is_valid
    assert len(result.warnings) == 5

    result = validate_device("vr", "windows", caps(has_keyboard=True, **recommended_capabilities("vr")), {})
    assert result.is_valid
    assert not any("Screen resolution" in w for w in result.warnings)


def test_learning_feature_support():
    support = learning_feature_support(caps(**recommended_capabilities("ar")))
    assert support["ar_learning"]
    assert support["motion_based_learning"]
    assert not support["vr_learning"]
    assert support["adaptive_content"]
