"""Capability validation for device registration and updates.

Each device class has hard requirements (violations are errors and block
registration) and soft recommendations (warnings, logged but not blocking).
Metadata is advisory only and never produces errors.
"""

from dataclasses import dataclass, field

# Absolute floor for offline content, in MB
MIN_STORAGE_MB = 10

RECOMMENDED_STORAGE_MB = {
    "web": 100,
    "mobile": 200,
    "ar": 500,
    "vr": 1000,
}

DESKTOP_PLATFORMS = ("windows", "macos", "linux")


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self

    def to_dict(self) -> dict:
        return {"is_valid": self.is_valid, "errors": self.errors, "warnings": self.warnings}


def _has_audio(caps: dict) -> bool:
    return bool(caps.get("has_speakers") or caps.get("has_microphone"))


def _has_motion_sensors(caps: dict) -> bool:
    return bool(caps.get("has_accelerometer") and caps.get("has_gyroscope"))


def validate_device_class(device_type: str, caps: dict) -> ValidationResult:
    """Hard requirements per device class."""
    result = ValidationResult()

    if device_type == "ar":
        if not caps.get("has_ar"):
            result.errors.append("AR devices must have AR capabilities")
        if not caps.get("has_camera"):
            result.errors.append("AR devices must have a camera")
        if not _has_motion_sensors(caps):
            result.errors.append("AR devices must have motion sensors (accelerometer and gyroscope)")

    elif device_type == "vr":
        if not caps.get("has_vr"):
            result.errors.append("VR devices must have VR capabilities")
        if not _has_motion_sensors(caps):
            result.errors.append("VR devices must have motion sensors for head tracking")
        if not _has_audio(caps):
            result.errors.append("VR devices must have audio capabilities for accessibility")

    elif device_type == "mobile":
        if not caps.get("has_touch_screen"):
            result.errors.append("Mobile devices must have a touch screen")
        if not caps.get("has_gps"):
            result.warnings.append("Mobile device without GPS may have limited location features")

    elif device_type == "web":
        if not caps.get("has_keyboard") and not caps.get("has_touch_screen"):
            result.errors.append("Web devices must support keyboard or touch input")

    if device_type != "vr" and not _has_audio(caps):
        result.warnings.append("Device lacks audio capabilities, may limit accessibility features")

    return result


def validate_platform(device_type: str, platform: str, caps: dict) -> ValidationResult:
    """Platform/device-class consistency."""
    result = ValidationResult()

    if platform == "web" and device_type != "web":
        result.errors.append("Web platform can only be used with web device type")
    elif device_type == "web" and platform != "web":
        result.errors.append("Web devices must use the web platform")

    if platform in ("ios", "android") and device_type in ("mobile", "ar"):
        if not caps.get("has_accelerometer"):
            result.warnings.append("Mobile platform should have accelerometer for orientation features")
    elif platform == "web":
        if not caps.get("supports_offline"):
            result.warnings.append("Web device should support offline for PWA features")
    elif platform in DESKTOP_PLATFORMS:
        if not caps.get("has_keyboard"):
            result.warnings.append("Desktop platform should have keyboard for full functionality")

    return result


def validate_storage(device_type: str, caps: dict) -> ValidationResult:
    result = ValidationResult()
    storage = caps.get("max_storage_size") or 0
    recommended = RECOMMENDED_STORAGE_MB.get(device_type, 100)

    if storage < MIN_STORAGE_MB:
        result.errors.append(f"Device must have at least {MIN_STORAGE_MB}MB storage capacity")
    elif storage < recommended:
        result.warnings.append(
            f"{device_type} device should have at least {recommended}MB storage for optimal experience"
        )
    return result


def validate_metadata(device_type: str, metadata: dict) -> ValidationResult:
    result = ValidationResult()
    if not metadata.get("timezone"):
        result.warnings.append("Device timezone should be provided")
    if not metadata.get("locale"):
        result.warnings.append("Device locale should be provided")
    if device_type != "vr" and not metadata.get("screen_resolution"):
        result.warnings.append("Screen resolution should be provided for optimal content rendering")
    if device_type in ("mobile", "ar") and not metadata.get("screen_density"):
        result.warnings.append("Screen density should be provided for mobile devices")
    if not metadata.get("network_type"):
        result.warnings.append("Network type should be provided for offline content optimization")
    return result


def validate_capabilities(device_type: str, platform: str, caps: dict) -> ValidationResult:
    """All capability rules. Used at registration and on capability updates."""
    return (
        validate_device_class(device_type, caps)
        .merge(validate_platform(device_type, platform, caps))
        .merge(validate_storage(device_type, caps))
    )


def validate_device(device_type: str, platform: str, caps: dict, metadata: dict) -> ValidationResult:
    return validate_capabilities(device_type, platform, caps).merge(
        validate_metadata(device_type, metadata)
    )


def recommended_capabilities(device_type: str) -> dict:
    """Capability set that passes validation without warnings for ``device_type``."""
    base = {"supports_offline": True, "has_speakers": True, "has_microphone": True}
    if device_type == "web":
        return {**base, "has_keyboard": True, "max_storage_size": 100}
    if device_type == "mobile":
        return {
            **base,
            "has_touch_screen": True,
            "has_camera": True,
            "has_gps": True,
            "has_accelerometer": True,
            "has_gyroscope": True,
            "max_storage_size": 200,
        }
    if device_type == "ar":
        return {
            **base,
            "has_camera": True,
            "has_ar": True,
            "has_touch_screen": True,
            "has_gps": True,
            "has_accelerometer": True,
            "has_gyroscope": True,
            "max_storage_size": 500,
        }
    if device_type == "vr":
        return {
            **base,
            "has_vr": True,
            "has_accelerometer": True,
            "has_gyroscope": True,
            "max_storage_size": 1000,
        }
    return base


def learning_feature_support(caps: dict) -> dict[str, bool]:
    """Which learning features a capability set can drive."""
    return {
        "offline_content": bool(caps.get("supports_offline")),
        "audio_content": bool(caps.get("has_speakers")),
        "voice_interaction": bool(caps.get("has_microphone")),
        "camera_based_learning": bool(caps.get("has_camera")),
        "location_based_learning": bool(caps.get("has_gps")),
        "motion_based_learning": _has_motion_sensors(caps),
        "ar_learning": bool(caps.get("has_ar") and caps.get("has_camera")),
        "vr_learning": bool(caps.get("has_vr")),
        "touch_interaction": bool(caps.get("has_touch_screen")),
        "keyboard_input": bool(caps.get("has_keyboard")),
        "adaptive_content": (caps.get("max_storage_size") or 0) >= 100,
    }
