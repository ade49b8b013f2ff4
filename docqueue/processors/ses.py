"""Email processor backed by Amazon SES."""

import asyncio
import logging
from typing import Any, Optional

import boto3

from docqueue.models import Job, utcnow

logger = logging.getLogger(__name__)


class SesEmailSender:
    """
    Sends email through SES.

    The boto3 client is created on first use so that registering the
    processor does not require AWS credentials or a region.
    """

    def __init__(
        self,
        email_from: str,
        ses_client=None,
        region_name: Optional[str] = None,
    ):
        self.email_from = email_from
        self.region_name = region_name
        self._client = ses_client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("ses", region_name=self.region_name)
        return self._client

    def _send(self, to: list[str], subject: str, body: str, sender: str) -> str:
        response = self.client.send_email(
            Source=sender,
            Destination={"ToAddresses": to},
            Message={
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": {
                    "Text": {"Data": body, "Charset": "UTF-8"},
                    "Html": {"Data": body, "Charset": "UTF-8"},
                },
            },
        )
        return response["MessageId"]

    async def __call__(self, job: Job) -> dict[str, Any]:
        """
        Send the email described by ``job.data``.

        Expects ``to`` (address or list of addresses), ``subject`` and
        ``body``; ``from`` overrides the configured sender.
        """
        data = job.data or {}
        to = data.get("to")
        if not to:
            raise ValueError("Email job requires a 'to' address")
        recipients = [to] if isinstance(to, str) else list(to)

        # boto3 is blocking
        message_id = await asyncio.to_thread(
            self._send,
            recipients,
            data.get("subject", ""),
            data.get("body", ""),
            data.get("from") or self.email_from,
        )
        logger.info(f"Email sent for job {job.id}: {message_id}")
        return {"message_id": message_id, "timestamp": utcnow().isoformat()}
