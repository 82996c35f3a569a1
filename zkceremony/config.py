"""
Ceremony configuration.

Two layers, both immutable once built:
- CeremonySettings: non-secret ceremony constants (archive prefix, folder
  names, beacon parameters), optionally overridden from a TOML file.
- CeremonyConfig: archive credentials, local root and the settings.

Environment variables are read here and nowhere else. Components receive
a CeremonyConfig (or the pieces of it they need) explicitly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigurationError

REQUIRED_ENV_VARS = (
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_DEFAULT_REGION",
    "AWS_ENDPOINT_URL",
    "S3BUCKET",
)

DEFAULT_ROOT = Path("./contributions")

_HEX32 = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class BeaconParams:
    """Public randomness applied at finalization."""

    block_number: str = "22038000"
    block_hash: str = "0x81d94f995b977ba0ecff48f8a6687aeb90025f4142743d7135bcf9751195541d"
    iterations: int = 10

    @property
    def hash_hex(self) -> str:
        """Block hash without the 0x prefix, as the transform tool expects it."""
        if self.block_hash.startswith("0x"):
            return self.block_hash[2:]
        return self.block_hash


@dataclass(frozen=True)
class CeremonySettings:
    remote_prefix: str = "mainnet-v1"
    seed_folder: str = "0000_initial"
    constraint_folder: str = "r1cs"
    ptau_name: str = "powersOfTau28_hez_final_18.ptau"
    artifact_suffix: str = ".zkey"
    constraint_suffix: str = ".r1cs"
    beacon: BeaconParams = field(default_factory=BeaconParams)

    @property
    def heal_suffixes(self) -> tuple[str, ...]:
        """Extensions whose absence locally triggers a sync-heal."""
        return (self.artifact_suffix, self.constraint_suffix)

    def folder_prefix(self, folder: str) -> str:
        """Archive key prefix for a contribution folder (always ends with '/')."""
        return f"{self.remote_prefix.strip('/')}/{folder}/"

    def folder_key(self, folder: str, relative_path: str) -> str:
        return self.folder_prefix(folder) + relative_path.lstrip("/")

    @property
    def root_prefix(self) -> str:
        return f"{self.remote_prefix.strip('/')}/"

    @property
    def ptau_key(self) -> str:
        return self.ptau_name


@dataclass(frozen=True)
class CeremonyConfig:
    bucket: str
    region: str
    endpoint_url: str
    access_key_id: str = field(repr=False)
    secret_access_key: str = field(repr=False)
    root: Path = DEFAULT_ROOT
    settings: CeremonySettings = field(default_factory=CeremonySettings)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str],
        *,
        root: Path | None = None,
        settings: CeremonySettings | None = None,
    ) -> CeremonyConfig:
        """
        Build the configuration from environment variables.

        Raises:
            ConfigurationError: listing every missing variable at once.
        """
        missing = missing_env_vars(environ)
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                hint=(
                    "Create a .env file with these variables or export them in your shell. "
                    "In Docker, pass --env-file .env or individual -e flags."
                ),
            )
        return cls(
            bucket=normalize_bucket(environ["S3BUCKET"]),
            region=environ["AWS_DEFAULT_REGION"],
            endpoint_url=environ["AWS_ENDPOINT_URL"],
            access_key_id=environ["AWS_ACCESS_KEY_ID"],
            secret_access_key=environ["AWS_SECRET_ACCESS_KEY"],
            root=root or DEFAULT_ROOT,
            settings=settings or CeremonySettings(),
        )

    def archive_env(self) -> dict[str, str]:
        """Variables handed to the archive CLI process."""
        return {
            "AWS_ACCESS_KEY_ID": self.access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.secret_access_key,
            "AWS_DEFAULT_REGION": self.region,
            "AWS_ENDPOINT_URL": self.endpoint_url,
        }


def missing_env_vars(environ: Mapping[str, str]) -> list[str]:
    return [name for name in REQUIRED_ENV_VARS if not environ.get(name)]


def normalize_bucket(value: str) -> str:
    """Strip an s3:// scheme and trailing slashes from a bucket reference."""
    bucket = value.strip()
    if bucket.startswith("s3://"):
        bucket = bucket[len("s3://") :]
    return bucket.rstrip("/")


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _str_or(value: Any, default: str) -> str:
    if isinstance(value, (str, int)) and str(value).strip():
        return str(value).strip()
    return default


def load_settings(path: Path) -> CeremonySettings:
    """
    Load ceremony settings from TOML.

    Recognized tables: [archive] prefix; [folders] seed, constraints;
    [files] ptau, artifact_suffix, constraint_suffix;
    [beacon] block_number, block_hash, iterations. Anything absent keeps
    its default.
    """
    import tomllib

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Cannot read settings file {path}: {e}") from e

    defaults = CeremonySettings()
    archive = _coerce_dict(data.get("archive"))
    folders = _coerce_dict(data.get("folders"))
    files = _coerce_dict(data.get("files"))
    beacon_raw = _coerce_dict(data.get("beacon"))

    iterations_raw = beacon_raw.get("iterations", defaults.beacon.iterations)
    try:
        iterations = int(iterations_raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"beacon.iterations must be an integer, got {iterations_raw!r}") from e
    if iterations <= 0:
        raise ConfigurationError("beacon.iterations must be a positive integer")

    block_hash = _str_or(beacon_raw.get("block_hash"), defaults.beacon.block_hash)
    if not _HEX32.match(block_hash):
        raise ConfigurationError(f"beacon.block_hash must be 32 bytes of hex, got {block_hash!r}")

    beacon = BeaconParams(
        block_number=_str_or(beacon_raw.get("block_number"), defaults.beacon.block_number),
        block_hash=block_hash,
        iterations=iterations,
    )

    return replace(
        defaults,
        remote_prefix=_str_or(archive.get("prefix"), defaults.remote_prefix),
        seed_folder=_str_or(folders.get("seed"), defaults.seed_folder),
        constraint_folder=_str_or(folders.get("constraints"), defaults.constraint_folder),
        ptau_name=_str_or(files.get("ptau"), defaults.ptau_name),
        artifact_suffix=_str_or(files.get("artifact_suffix"), defaults.artifact_suffix),
        constraint_suffix=_str_or(files.get("constraint_suffix"), defaults.constraint_suffix),
        beacon=beacon,
    )
