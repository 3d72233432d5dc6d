"""Pydantic models describing the declared-state document."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

_IFNAME_MAX_LEN = 15


class DeclaredStateBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


def _check_if_name(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("interface name must not be blank")
    if len(stripped) > _IFNAME_MAX_LEN or "/" in stripped or " " in stripped:
        raise ValueError(f"invalid interface name: {value!r}")
    return stripped


class InterfaceSpec(DeclaredStateBaseModel):
    name: str
    kind: str = "dummy"
    mtu: int | None = Field(default=None, ge=68, le=65535)
    external: bool = False

    _check_name = field_validator("name")(_check_if_name)


class RadvdSpec(DeclaredStateBaseModel):
    network_instance: UUID = Field(alias="for_ni")
    listen_if: str

    _check_listen_if = field_validator("listen_if")(_check_if_name)


class DeclaredState(DeclaredStateBaseModel):
    interfaces: list[InterfaceSpec] = Field(default_factory=list)
    radvd: list[RadvdSpec] = Field(default_factory=list)
