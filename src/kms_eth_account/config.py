from __future__ import annotations

import os
import re
from collections.abc import Mapping
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, SecretStr, ValidationError
from pydantic.functional_validators import AfterValidator

from .exceptions import ConfigurationError

ENV_KEY_ID = "AWS_KMS_KEY_ID"
ENV_ACCESS_KEY_ID = "AWS_ACCESS_KEY_ID"
ENV_SECRET_ACCESS_KEY = "AWS_SECRET_ACCESS_KEY"
ENV_REGION = "AWS_REGION"
ENV_ENDPOINT_URL = "AWS_ENDPOINT_URL"

_REQUIRED_ENV = (ENV_KEY_ID, ENV_ACCESS_KEY_ID, ENV_SECRET_ACCESS_KEY, ENV_REGION)

KEY_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def _validate_key_id(v: str) -> str:
    v = v.strip()
    if not KEY_ID_RE.match(v):
        raise ValueError("KMS key id is not a valid UUID")
    return v


def _validate_non_empty(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be empty")
    return v


def _validate_secret(v: SecretStr) -> SecretStr:
    if not v.get_secret_value().strip():
        raise ValueError("must not be empty")
    return v


KeyId = Annotated[str, AfterValidator(_validate_key_id)]
NonEmptyStr = Annotated[str, AfterValidator(_validate_non_empty)]


class KmsConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    key_id: KeyId
    access_key_id: NonEmptyStr
    secret_access_key: Annotated[SecretStr, AfterValidator(_validate_secret)]
    region: NonEmptyStr
    endpoint_url: Optional[str] = None
    connect_timeout: float = 5.0
    read_timeout: float = 10.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> KmsConfig:
        env = os.environ if environ is None else environ
        for name in _REQUIRED_ENV:
            if not env.get(name):
                raise ConfigurationError(f"{name} is not defined")
        try:
            return cls(
                key_id=env[ENV_KEY_ID],
                access_key_id=env[ENV_ACCESS_KEY_ID],
                secret_access_key=env[ENV_SECRET_ACCESS_KEY],
                region=env[ENV_REGION],
                endpoint_url=env.get(ENV_ENDPOINT_URL) or None,
            )
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e
