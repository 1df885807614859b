"""Bitfinex gateway: authenticated websocket stream plus signed REST via ccxt async.

The websocket carries everything that changes state: our funding credits and
loans, our funding offers and trades, wallets and positions on the
authenticated channel, and the public funding book on a subscribed channel.
Borrow and cancel commands are sent as websocket input messages. Returning a
borrow has no websocket equivalent and goes through ccxt's Bitfinex client.
"""

import asyncio
import hashlib
import hmac
import json
import time
from decimal import Decimal
from typing import Any

import ccxt.async_support as ccxt_async
import websockets
from websockets.exceptions import ConnectionClosed

from autofund.config import ExchangeSettings
from autofund.exceptions import AuthenticationError, CommandError, MessageDecodeError
from autofund.exchange.client import ExchangeGateway
from autofund.exchange.decoder import decode_account_message, decode_book_message
from autofund.exchange.events import EventHandler, FundingEvent
from autofund.logging import get_logger

logger = get_logger(__name__)

# Channel id of the authenticated account stream
_ACCOUNT_CHANNEL = 0


class BitfinexGateway(ExchangeGateway):
    """Concrete Bitfinex v2 gateway.

    Args:
        settings: Connection settings (keys, symbol, URL, backoff).
        include_account_updates: Also ask for wallet and position messages.
    """

    def __init__(
        self, settings: ExchangeSettings, include_account_updates: bool = False
    ) -> None:
        self._settings = settings
        self._symbol = settings.symbol
        self._include_account_updates = include_account_updates
        self._handler: EventHandler | None = None
        self._ws: Any = None
        self._closing = False
        self._logged_in = False
        self._book_channel: int | None = None
        self._last_nonce = 0

        self._rest = ccxt_async.bitfinex(
            {
                "apiKey": settings.api_key.get_secret_value(),
                "secret": settings.api_secret.get_secret_value(),
                "enableRateLimit": True,
            }
        )

    @property
    def rest(self) -> ccxt_async.bitfinex:
        """Access the underlying ccxt exchange instance."""
        return self._rest

    def set_event_handler(self, handler: EventHandler) -> None:
        self._handler = handler

    async def run(self) -> None:
        """Receive loop with reconnect and exponential backoff."""
        self._closing = False
        delay = self._settings.reconnect_delay
        logger.info("bitfinex_gateway_starting", symbol=self._symbol, url=self._settings.ws_url)

        while not self._closing:
            try:
                async with websockets.connect(
                    self._settings.ws_url,
                    ping_interval=self._settings.ping_interval,
                ) as ws:
                    self._ws = ws
                    delay = self._settings.reconnect_delay
                    logger.info("bitfinex_socket_open")
                    await self._login()
                    async for raw in ws:
                        await self._on_message(raw)
            except AuthenticationError:
                self._closing = True
                raise
            except asyncio.CancelledError:
                raise
            except (ConnectionClosed, OSError) as exc:
                logger.warning("bitfinex_socket_closed", error=str(exc))
            finally:
                self._ws = None
                self._logged_in = False
                self._book_channel = None

            if self._closing:
                break

            logger.info("bitfinex_reconnecting", delay=delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._settings.max_reconnect_delay)

        logger.info("bitfinex_gateway_stopped")

    async def close(self) -> None:
        """Close the socket and the ccxt session. Must be called to avoid resource leaks."""
        logger.info("closing_bitfinex_connection")
        self._closing = True
        if self._ws is not None:
            await self._ws.close()
        await self._rest.close()
        logger.info("bitfinex_connection_closed")

    async def submit_funding_offer(
        self, amount: Decimal, rate: Decimal, period: int
    ) -> None:
        msg = [
            0,
            "fon",
            None,
            {
                "type": "LIMIT",
                "symbol": self._symbol,
                "amount": str(-amount),  # negative amount asks to borrow
                "rate": str(rate),
                "period": period,
                "flags": 0,
            },
        ]
        logger.info("submitting_funding_offer", amount=str(amount), rate=str(rate), period=period)
        await self._send(msg)

    async def cancel_funding_offer(self, offer_id: int) -> None:
        logger.info("cancelling_funding_offer", offer_id=offer_id)
        await self._send([0, "foc", None, {"id": offer_id}])

    async def close_funding(self, borrow_id: int) -> None:
        """Return a borrow via POST /v2/auth/w/funding/close."""
        logger.info("closing_funding", borrow_id=borrow_id)
        try:
            await self._rest.private_post_auth_w_funding_close({"id": borrow_id})
        except ccxt_async.AuthenticationError as exc:
            raise CommandError(f"authentication rejected closing {borrow_id}: {exc}") from exc
        except ccxt_async.BaseError as exc:
            raise CommandError(f"funding close rejected for {borrow_id}: {exc}") from exc

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    def _next_nonce(self) -> int:
        # Microseconds, shared key with ccxt's REST nonce which must keep increasing
        nonce = max(int(time.time() * 1_000_000), self._last_nonce + 1)
        self._last_nonce = nonce
        return nonce

    def _sign(self, message: str) -> str:
        secret = self._settings.api_secret.get_secret_value().encode()
        return hmac.new(secret, message.encode(), hashlib.sha384).hexdigest()

    async def _send(self, msg: Any) -> None:
        if self._ws is None:
            raise CommandError("websocket not connected")
        try:
            await self._ws.send(json.dumps(msg))
        except ConnectionClosed as exc:
            raise CommandError(f"websocket closed while sending: {exc}") from exc

    async def _login(self) -> None:
        nonce = str(self._next_nonce())
        payload = f"AUTH{nonce}"
        filters = [f"funding-{self._symbol}"]
        if self._include_account_updates:
            filters += ["wallet", "trading"]

        logger.info("bitfinex_authenticating", filters=filters)
        await self._send(
            {
                "event": "auth",
                "apiKey": self._settings.api_key.get_secret_value(),
                "authSig": self._sign(payload),
                "authNonce": nonce,
                "authPayload": payload,
                "filter": filters,
            }
        )

    async def _subscribe_book(self) -> None:
        logger.info("subscribing_funding_book", symbol=self._symbol)
        await self._send(
            {
                "event": "subscribe",
                "channel": "book",
                "symbol": self._symbol,
                "len": str(self._settings.book_length),
            }
        )

    async def _on_message(self, raw: str | bytes) -> None:
        """Decode one frame. A bad frame is logged and dropped, never raised."""
        text = raw.decode() if isinstance(raw, bytes) else raw
        if text in ("ping", "pong"):
            return

        try:
            msg = json.loads(text)
            if isinstance(msg, list):
                self._handle_data_message(msg)
            elif isinstance(msg, dict):
                await self._handle_event_message(msg)
        except AuthenticationError:
            raise
        except MessageDecodeError as exc:
            logger.warning("message_decode_failed", error=str(exc), raw=text[:500])
        except Exception:
            logger.error("message_handling_failed", raw=text[:500], exc_info=True)

    async def _handle_event_message(self, msg: dict) -> None:
        event = msg.get("event")
        if event == "auth":
            if msg.get("status") != "OK":
                logger.error("bitfinex_auth_failed", message=msg.get("msg"), code=msg.get("code"))
                self._closing = True
                if self._ws is not None:
                    await self._ws.close()
                raise AuthenticationError(f"Bitfinex rejected API keys: {msg.get('msg')}")
            logger.info("bitfinex_authenticated")
            self._logged_in = True
            await self._subscribe_book()
        elif event == "subscribed":
            self._book_channel = msg.get("chanId")
            logger.info(
                "bitfinex_subscribed",
                channel=msg.get("channel"),
                symbol=msg.get("symbol"),
                chan_id=self._book_channel,
            )
        elif event == "info":
            logger.info("bitfinex_info", info=msg)
        elif event == "conf":
            logger.info("bitfinex_configuration_change", conf=msg)
        elif event == "error":
            logger.warning("bitfinex_error_event", message=msg.get("msg"), code=msg.get("code"))
        elif event == "pong":
            pass
        else:
            logger.debug("bitfinex_unknown_event", event=event)

    def _handle_data_message(self, data: list) -> None:
        if not data:
            return

        channel = data[0]
        if channel == _ACCOUNT_CHANNEL:
            events = decode_account_message(data)
        elif channel == self._book_channel:
            events = decode_book_message(data)
        else:
            return

        for event in events:
            self._emit(event)

    def _emit(self, event: FundingEvent) -> None:
        if self._handler is None:
            return
        try:
            self._handler(event)
        except Exception:
            logger.error("event_handler_failed", event_type=event.type.value, exc_info=True)
