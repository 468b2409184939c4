"""Decoded report records for tcp-diagtool.

Contains:
- Report ABC: Base class for decoded drive reports
- StatusReport: Reply to any command other than fault download
- FaultReport: Reply to the fault download command (0x10)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

FLAG_COUNT = 16


def _no_flags() -> tuple[bool, ...]:
    return (False,) * FLAG_COUNT


@dataclass(frozen=True)
class Report(ABC):
    """Abstract base class for decoded reports.

    flags[0] is CB1 and flags[15] is CB16.
    """

    flags: tuple[bool, ...] = field(default_factory=_no_flags)

    def __post_init__(self) -> None:
        """Validate invariants."""
        if len(self.flags) != FLAG_COUNT:
            raise ValueError(f"Expected {FLAG_COUNT} flags, got {len(self.flags)}")

    def cb(self, n: int) -> bool:
        """Return flag CBn (1-based, 1..16)."""
        if not 1 <= n <= FLAG_COUNT:
            raise IndexError(f"Flag CB{n} out of range")
        return self.flags[n - 1]

    @property
    def active_flags(self) -> list[str]:
        """Names of set flags, highest first."""
        return [f"CB{n}" for n in range(FLAG_COUNT, 0, -1) if self.cb(n)]

    @property
    @abstractmethod
    def title(self) -> str:
        """Short name of the report kind."""
        pass

    @abstractmethod
    def fields(self) -> list[tuple[str, str]]:
        """Return (label, value) pairs in display order."""
        pass

    def lines(self) -> list[str]:
        """Render the report as a title line followed by a field table."""
        flags = " ".join(self.active_flags) or "none"
        rows = [("Flags", flags)] + self.fields()
        return [f"{self.title}:"] + [f"  {label:<24} {value}" for label, value in rows]

    def print(self) -> None:
        """Print the report to stdout."""
        for line in self.lines():
            print(line)


@dataclass(frozen=True)
class StatusReport(Report):
    """Status packet: averaged readings plus firmware version."""

    out_freq: int = 0
    avg_rms_current: float = 0.0
    avg_rms_voltage: float = 0.0
    vs1: float = 0.0
    vs2: float = 0.0
    ground_fault_current: float = 0.0
    temperature: float = 0.0
    sw_version_major: int = 0
    sw_version_minor: int = 0
    bad_command: int = 0

    @property
    def title(self) -> str:
        return "Status report"

    @property
    def firmware_version(self) -> str:
        return f"{self.sw_version_major}.{self.sw_version_minor}"

    def fields(self) -> list[tuple[str, str]]:
        return [
            ("Output frequency", str(self.out_freq)),
            ("Avg RMS current", str(self.avg_rms_current)),
            ("Avg RMS voltage", str(self.avg_rms_voltage)),
            ("VS1", str(self.vs1)),
            ("VS2", str(self.vs2)),
            ("Ground fault current", str(self.ground_fault_current)),
            ("Temperature", str(self.temperature)),
            ("Firmware version", self.firmware_version),
            ("Bad command", f"0x{self.bad_command:02X}"),
        ]


@dataclass(frozen=True)
class FaultReport(Report):
    """Fault packet: per-phase currents captured at the fault."""

    out_freq: int = 0
    u_phase_current: float = 0.0
    v_phase_current: float = 0.0
    w_phase_current: float = 0.0
    vs1: float = 0.0
    vs2: float = 0.0
    ground_current: float = 0.0
    temperature: float = 0.0
    modulation_index: float = 0.0

    @property
    def title(self) -> str:
        return "Fault report"

    def fields(self) -> list[tuple[str, str]]:
        return [
            ("Output frequency", str(self.out_freq)),
            ("U phase current", str(self.u_phase_current)),
            ("V phase current", str(self.v_phase_current)),
            ("W phase current", str(self.w_phase_current)),
            ("VS1", str(self.vs1)),
            ("VS2", str(self.vs2)),
            ("Ground current", str(self.ground_current)),
            ("Temperature", str(self.temperature)),
            ("Modulation index", str(self.modulation_index)),
        ]
