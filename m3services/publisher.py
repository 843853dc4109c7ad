"""Publish service API definitions to the public API registry."""

from __future__ import annotations

import json
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

PUBLISH_URL = os.environ.get("MICRO_PUBLISH_URL", "http://localhost:8080/publicapi/Publish")

_STRING_FIELDS = (
    "name",
    "category",
    "description",
    "icon",
    "open_api_json",
    "examples_json",
    "postman_json",
)


class PublishError(RuntimeError):
    """Raised when an API definition cannot be assembled or published."""


@dataclass
class PublicAPI:
    name: str = ""
    category: str = ""
    description: str = ""
    icon: str = ""
    open_api_json: str = ""
    pricing: dict[str, int] | None = None
    examples_json: str = ""
    postman_json: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form, leaving out empty optional fields."""
        out: dict[str, Any] = {"name": self.name}
        if self.category:
            out["category"] = self.category
        out["description"] = self.description
        if self.icon:
            out["icon"] = self.icon
        out["open_api_json"] = self.open_api_json
        if self.pricing:
            out["pricing"] = dict(self.pricing)
        if self.examples_json:
            out["examples_json"] = self.examples_json
        if self.postman_json:
            out["postman_json"] = self.postman_json
        return out


def _read_optional(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except OSError:
        return None


def _text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _pricing(raw: Any) -> dict[str, int]:
    if not isinstance(raw, dict):
        return {}
    return {
        key: value
        for key, value in raw.items()
        if isinstance(value, int) and not isinstance(value, bool)
    }


def _apply_overrides(api: PublicAPI, raw: bytes) -> None:
    try:
        data = json.loads(raw)
    except ValueError:
        return
    if not isinstance(data, dict):
        return
    for key, value in data.items():
        field = key.lower()
        if field in _STRING_FIELDS and isinstance(value, str):
            setattr(api, field, value)
        elif field == "pricing" and isinstance(value, dict):
            api.pricing = _pricing(value)


def _read_spec(service_dir: Path, service_name: str) -> str:
    for candidate in (f"api-{service_name}.json", "api-protobuf.json"):
        data = _read_optional(service_dir / candidate)
        if data is not None:
            return _text(data)
    raise PublishError(f"failed to read json spec in {service_dir}")


def load_public_api(service_dir: str | os.PathLike, service_name: str) -> PublicAPI:
    """Assemble a service's public API definition from the files in its directory."""
    service_dir = Path(service_dir)
    readme = _read_optional(service_dir / "README.md")
    if readme is None:
        raise PublishError(f"failed to read readme in {service_dir}")

    spec_text = _read_spec(service_dir, service_name)
    try:
        spec = json.loads(spec_text)
    except ValueError as exc:
        raise PublishError(f"failed to unmarshal: {exc}") from exc
    if not isinstance(spec, dict):
        raise PublishError("failed to unmarshal: spec is not a JSON object")

    api = PublicAPI()
    overrides = _read_optional(service_dir / "publicapi.json")
    if overrides is not None:
        _apply_overrides(api, overrides)

    if not api.name:
        api.name = service_name
    if not api.description:
        api.description = _text(readme)
    if not api.open_api_json:
        api.open_api_json = spec_text

    examples = _read_optional(service_dir / "examples.json")
    if examples:
        api.examples_json = _text(examples)

    pricing_raw = _read_optional(service_dir / "pricing.json")
    if pricing_raw:
        try:
            api.pricing = _pricing(json.loads(pricing_raw))
        except ValueError:
            api.pricing = {}

    postman = _read_optional(service_dir / "postman.json")
    if postman:
        api.postman_json = _text(postman)

    return api


def publish_api(api: PublicAPI, token: str = "", url: str = PUBLISH_URL) -> None:
    """Post an API definition to the registry, raising on any non-200 reply."""
    try:
        resp = requests.post(
            url,
            json={"api": api.to_dict()},
            headers={"Authorization": "Bearer " + token},
            timeout=60,
        )
    except requests.RequestException as exc:
        raise PublishError(str(exc)) from exc
    if resp.status_code != 200:
        raise PublishError(resp.text)


def _run(command: list[str], cwd: Path) -> tuple[bool, str]:
    try:
        proc = subprocess.run(
            command,
            cwd=str(cwd),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError as exc:
        return False, str(exc)
    output = proc.stdout or b""
    if isinstance(output, bytes):
        output = output.decode("utf-8", errors="replace")
    return proc.returncode == 0, output


def main(argv: list[str] | None = None) -> int:
    """Build, describe and publish every service directory that is not marked to skip."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: publisher <services-dir>", file=sys.stderr)
        return 1
    try:
        with os.scandir(args[0]) as it:
            entries = sorted(
                (entry.name for entry in it if entry.is_dir() and not entry.name.startswith(".")),
            )
    except OSError as exc:
        print(exc, file=sys.stderr)
        return 1

    work_dir = Path.cwd()
    token = os.environ.get("MICRO_ADMIN_TOKEN", "")

    for service_name in entries:
        service_dir = work_dir / service_name
        try:
            names = os.listdir(service_dir)
        except OSError as exc:
            print("Failed to read service dir", exc)
            return 1
        if "skip" in names:
            continue

        print("Processing folder", service_dir)
        ok, output = _run(["make", "api"], service_dir)
        if not ok:
            print("Failed to make api", output)
            return 1

        ok, output = _run(
            ["openapi2postmanv2", "-s", f"api-{service_name}.json", "-o", "postman.json"],
            service_dir,
        )
        if not ok:
            print("Failed to generate postman collection", output)
            return 1

        try:
            api = load_public_api(service_dir, service_name)
        except PublishError as exc:
            print(exc)
            return 1

        try:
            publish_api(api, token)
        except PublishError as exc:
            print("Failed to save data to publicapi service", exc)
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())