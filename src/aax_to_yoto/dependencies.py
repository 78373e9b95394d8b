"""FFmpeg dependency checking and installation guidance."""

import platform
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum, auto

REQUIRED_ENCODERS = ("libmp3lame", "aac")


class OSType(Enum):
    """Operating system families with distinct install instructions."""

    LINUX_DEBIAN = auto()  # Debian, Ubuntu, Mint, Pop!_OS
    LINUX_REDHAT = auto()  # RHEL, Fedora, CentOS, Rocky
    LINUX_ARCH = auto()  # Arch, Manjaro
    LINUX_OTHER = auto()
    MACOS = auto()
    WINDOWS = auto()
    UNKNOWN = auto()


@dataclass
class DependencyStatus:
    """Status of a single executable."""

    name: str
    found: bool
    path: str | None = None
    version: str | None = None


@dataclass
class DependencyCheckResult:
    """Result of checking ffmpeg, ffprobe and the encoders we need."""

    ffmpeg: DependencyStatus
    ffprobe: DependencyStatus
    encoders: dict[str, bool]
    os_type: OSType
    os_name: str

    @property
    def all_found(self) -> bool:
        """Check that both executables and every required encoder are available."""
        return self.ffmpeg.found and self.ffprobe.found and all(self.encoders.values())

    @property
    def missing(self) -> list[str]:
        """Names of missing executables and encoders."""
        missing = [s.name for s in (self.ffmpeg, self.ffprobe) if not s.found]
        missing.extend(name for name, available in self.encoders.items() if not available)
        return missing


def _read_os_release() -> dict[str, str]:
    os_release = {}
    with open("/etc/os-release") as f:
        for line in f:
            if "=" in line:
                key, value = line.strip().split("=", 1)
                os_release[key] = value.strip('"')
    return os_release


def detect_os() -> tuple[OSType, str]:
    """
    Detect the operating system and, on Linux, the distribution family.

    Returns:
        Tuple of (OSType, human-readable name).
    """
    system = platform.system().lower()

    if system == "darwin":
        return OSType.MACOS, f"macOS {platform.mac_ver()[0]}"

    if system == "windows":
        return OSType.WINDOWS, f"Windows {platform.win32_ver()[0]}"

    if system == "linux":
        try:
            os_release = _read_os_release()
        except FileNotFoundError:
            return OSType.LINUX_OTHER, "Linux"

        ids = {os_release.get("ID", "").lower(), *os_release.get("ID_LIKE", "").lower().split()}
        name = os_release.get("PRETTY_NAME", "Linux")

        if ids & {"debian", "ubuntu"}:
            return OSType.LINUX_DEBIAN, name
        if ids & {"fedora", "rhel", "centos", "rocky", "almalinux"}:
            return OSType.LINUX_REDHAT, name
        if ids & {"arch", "manjaro"}:
            return OSType.LINUX_ARCH, name
        return OSType.LINUX_OTHER, name

    return OSType.UNKNOWN, platform.system()


def get_version(executable: str) -> str | None:
    """First line of ``executable -version``, or None if it can't be run."""
    try:
        result = subprocess.run(
            [executable, "-version"], check=False, capture_output=True, text=True, timeout=10
        )
    except (subprocess.TimeoutExpired, OSError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.split("\n")[0]


def check_dependency(name: str) -> DependencyStatus:
    """Look up ``name`` on PATH and read its version."""
    path = shutil.which(name)
    if path:
        return DependencyStatus(name=name, found=True, path=path, version=get_version(path))
    return DependencyStatus(name=name, found=False)


def check_encoders(ffmpeg_path: str, names: tuple[str, ...] = REQUIRED_ENCODERS) -> dict[str, bool]:
    """Report which of ``names`` appear in ``ffmpeg -encoders``."""
    try:
        result = subprocess.run(
            [ffmpeg_path, "-hide_banner", "-encoders"],
            check=False,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (subprocess.TimeoutExpired, OSError):
        return {name: False for name in names}

    listed = {line.split()[1] for line in result.stdout.splitlines() if len(line.split()) > 1}
    return {name: name in listed for name in names}


def check_dependencies() -> DependencyCheckResult:
    """Check ffmpeg, ffprobe and the required encoders."""
    os_type, os_name = detect_os()
    ffmpeg = check_dependency("ffmpeg")
    encoders = check_encoders(ffmpeg.path) if ffmpeg.found else {name: False for name in REQUIRED_ENCODERS}

    return DependencyCheckResult(
        ffmpeg=ffmpeg,
        ffprobe=check_dependency("ffprobe"),
        encoders=encoders,
        os_type=os_type,
        os_name=os_name,
    )


INSTALL_INSTRUCTIONS: dict[OSType, str] = {
    OSType.LINUX_DEBIAN: "sudo apt update && sudo apt install ffmpeg",
    OSType.LINUX_REDHAT: (
        "Enable RPM Fusion, then:\n    sudo dnf install ffmpeg\n"
        "  (the ffmpeg-free package lacks libmp3lame on some releases)"
    ),
    OSType.LINUX_ARCH: "sudo pacman -S ffmpeg",
    OSType.LINUX_OTHER: "Install ffmpeg from your package manager, built with libmp3lame.",
    OSType.MACOS: "brew install ffmpeg",
    OSType.WINDOWS: "winget install ffmpeg   (or: choco install ffmpeg)",
    OSType.UNKNOWN: "See https://ffmpeg.org/download.html",
}


def get_installation_instructions(os_type: OSType) -> str:
    """Installation hint for ``os_type``."""
    return INSTALL_INSTRUCTIONS.get(os_type, INSTALL_INSTRUCTIONS[OSType.UNKNOWN])


def format_dependency_check(result: DependencyCheckResult) -> str:
    """
    Format dependency check result as a human-readable string.

    Args:
        result: The dependency check result.

    Returns:
        Formatted string for display.
    """
    lines = ["=" * 60, "DEPENDENCY CHECK", "=" * 60, f"\nOperating System: {result.os_name}", ""]

    for status in (result.ffmpeg, result.ffprobe):
        if status.found:
            lines.append(f"✓ {status.name + ':':<9}Found")
            lines.append(f"  Path:    {status.path}")
            if status.version:
                version = status.version
                if len(version) > 60:
                    version = version[:57] + "..."
                lines.append(f"  Version: {version}")
        else:
            lines.append(f"✗ {status.name + ':':<9}NOT FOUND")
        lines.append("")

    for name, available in result.encoders.items():
        lines.append(f"{'✓' if available else '✗'} encoder {name}")
    lines.append("")

    if result.all_found:
        lines.append("Status: All dependencies satisfied ✓")
    else:
        lines.append(f"Status: Missing dependencies: {', '.join(result.missing)}")
        lines.append("")
        lines.append("INSTALLATION INSTRUCTIONS")
        lines.append("-" * 40)
        lines.append("  " + get_installation_instructions(result.os_type))

    lines.append("")
    lines.append("=" * 60)
    return "\n".join(lines)


def require_dependencies() -> DependencyCheckResult:
    """
    Check dependencies and raise an error if any are missing.

    Raises:
        RuntimeError: If ffmpeg, ffprobe or an encoder is missing.
    """
    result = check_dependencies()
    if not result.all_found:
        raise RuntimeError(
            f"Missing required dependencies: {', '.join(result.missing)}\n\n"
            f"{format_dependency_check(result)}"
        )
    return result
