"""Version information and release notes for autoquality."""

__version__ = "0.3.0"

RELEASE_NOTES = """
## 0.3.0

### Features

- Dark scene detection raises the quality target for low-luminance content
- Named presets (`quality`, `balanced`, `compression`) via override files
- Already-optimal sources are passed through in copy mode

### Changes

- Quality arguments are appended to the encoder parameters instead of rewritten in place

## 0.2.0

- SSIM fallback when the ffmpeg build lacks libvmaf
- Hardware encoders are probed with their software equivalent

## 0.1.0

Initial release.

- Binary CRF search against a VMAF target over short samples
- Content-aware target from release year, genre, HDR and resolution
""".strip()
