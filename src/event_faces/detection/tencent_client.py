"""Tencent Cloud IAI face detection client."""

import base64
import logging
from typing import Protocol

from tencentcloud.common import credential
from tencentcloud.common.exception.tencent_cloud_sdk_exception import TencentCloudSDKException
from tencentcloud.common.profile.client_profile import ClientProfile
from tencentcloud.common.profile.http_profile import HttpProfile
from tencentcloud.iai.v20200303 import iai_client, models

from event_faces.config import (
    DETECT_TIMEOUT,
    TENCENT_IAI_HOST,
    TENCENT_REGION,
    TENCENT_SECRET_ID,
    TENCENT_SECRET_KEY,
)
from event_faces.errors import CredentialsMissing, ProviderUnavailable
from event_faces.models import ProviderFace, ProviderResult

logger = logging.getLogger(__name__)


class DetectionProvider(Protocol):
    """Anything that can find face boxes in an encoded image."""

    def submit(
        self,
        image_bytes: bytes,
        max_face_num: int,
        min_face_size: int,
        model_version: str,
    ) -> ProviderResult: ...


class TencentFaceClient:
    """Client for the IAI DetectFace action via the Tencent Cloud SDK.

    Args:
        client: Pre-built object exposing ``DetectFace(request)``. Built from
            the credentials on first use when omitted.
    """

    def __init__(
        self,
        secret_id: str | None = None,
        secret_key: str | None = None,
        region: str | None = None,
        timeout: float = DETECT_TIMEOUT,
        client=None,
    ) -> None:
        self.secret_id = secret_id if secret_id is not None else TENCENT_SECRET_ID
        self.secret_key = secret_key if secret_key is not None else TENCENT_SECRET_KEY
        self.region = region or TENCENT_REGION
        self.timeout = timeout
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = build_iai_client(
                self.secret_id, self.secret_key, self.region, self.timeout
            )
        return self._client

    def submit(
        self,
        image_bytes: bytes,
        max_face_num: int,
        min_face_size: int,
        model_version: str,
    ) -> ProviderResult:
        """Call DetectFace and return boxes in the submitted image's pixel space."""
        if not self.secret_id or not self.secret_key:
            raise CredentialsMissing(
                "Tencent Cloud credentials not configured. "
                "Set TENCENT_SECRET_ID and TENCENT_SECRET_KEY in .env file."
            )
        req = models.DetectFaceRequest()
        req.Image = base64.b64encode(image_bytes).decode("ascii")
        req.MaxFaceNum = max_face_num
        req.MinFaceSize = min_face_size
        req.FaceModelVersion = model_version

        logger.info("Calling Tencent DetectFace (%d bytes image)", len(image_bytes))
        try:
            resp = self._get_client().DetectFace(req)
        except TencentCloudSDKException as exc:
            raise ProviderUnavailable(
                f"Tencent API error {exc.get_code()}: {exc.get_message()}"
            ) from exc
        return parse_detect_response(resp)


def build_iai_client(
    secret_id: str,
    secret_key: str,
    region: str,
    timeout: float = DETECT_TIMEOUT,
) -> iai_client.IaiClient:
    """Build an SDK client whose HTTP requests time out after ``timeout`` seconds."""
    cred = credential.Credential(secret_id, secret_key)
    http_profile = HttpProfile(endpoint=TENCENT_IAI_HOST, reqTimeout=int(timeout))
    client_profile = ClientProfile(httpProfile=http_profile)
    return iai_client.IaiClient(cred, region, client_profile)


def parse_detect_response(resp: models.DetectFaceResponse) -> ProviderResult:
    """Convert a DetectFace response model into a ProviderResult."""
    try:
        faces = [
            ProviderFace(
                x=int(info.X),
                y=int(info.Y),
                width=int(info.Width),
                height=int(info.Height),
            )
            for info in resp.FaceInfos or []
        ]
        return ProviderResult(
            faces=faces,
            image_width=int(resp.ImageWidth or 0),
            image_height=int(resp.ImageHeight or 0),
        )
    except (AttributeError, TypeError, ValueError) as exc:
        raise ProviderUnavailable(f"Malformed DetectFace response: {exc}") from exc
