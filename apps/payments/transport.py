"""
HTTP client for the pending expense endpoints.

Maps transport failures and error responses onto the client exception
hierarchy so the session controller only deals in ``PaymentsError``.
"""

import logging
from typing import Any, Optional

import httpx

from .exceptions import (
    PaymentNetworkError,
    PendingExpenseNotFoundError,
    UpiValidationError,
)

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> Optional[str]:
    """Pull ``{"error": "..."}`` out of an error response, if present."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get('error'), str):
        return body['error']
    return None


class ExpenseApiClient:
    """Async client for ``/api/expenses/upi/*`` with Bearer auth."""

    INITIATE_PATH = '/api/expenses/upi/initiate'
    CONFIRM_PATH = '/api/expenses/upi/confirm/{expense_id}'

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.token = token
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=base_url.rstrip('/'),
            timeout=timeout,
        )

    async def __aenter__(self) -> 'ExpenseApiClient':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict,
        *,
        not_found=PaymentNetworkError
    ) -> Any:
        try:
            response = await self.client.request(
                method,
                path,
                json=payload,
                headers={'Authorization': f'Bearer {self.token}'},
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise PaymentNetworkError() from exc

        if response.status_code == 404:
            logger.warning("%s %s returned 404", method, path)
            raise not_found()
        if response.status_code == 400:
            raise UpiValidationError(_error_message(response))
        if response.status_code in (401, 403):
            raise PaymentNetworkError('Your session has expired. Please log in again.')
        if response.is_error:
            logger.warning("%s %s returned %s", method, path, response.status_code)
            raise PaymentNetworkError(_error_message(response))

        try:
            return response.json()
        except ValueError as exc:
            raise PaymentNetworkError('Unexpected response from server.') from exc

    async def initiate(self, payload: dict) -> str:
        """
        Create a PENDING expense.

        Returns:
            The new expense id.

        Raises:
            UpiValidationError: On a 400 (bad amount or category)
            PaymentNetworkError: On transport failure or any other error,
                including a 404 (no such endpoint)
        """
        body = await self._request('POST', self.INITIATE_PATH, payload)
        try:
            return str(body['data']['expenseId'])
        except (KeyError, TypeError) as exc:
            raise PaymentNetworkError('Unexpected response from server.') from exc

    async def confirm(self, expense_id: str, status: str) -> dict:
        """
        Resolve a PENDING expense as CONFIRMED or CANCELLED.

        Returns:
            The resolved record as stored on the server.

        Raises:
            PendingExpenseNotFoundError: On a 404
            PaymentNetworkError: On transport failure or any other error
        """
        path = self.CONFIRM_PATH.format(expense_id=expense_id)
        body = await self._request(
            'PATCH', path, {'status': status}, not_found=PendingExpenseNotFoundError
        )
        if not isinstance(body, dict) or not isinstance(body.get('data'), dict):
            raise PaymentNetworkError('Unexpected response from server.')
        return body['data']
