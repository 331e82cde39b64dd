"""Peer runtime — workflows against the index and the readiness loop.

One thread does everything. :meth:`PeerRuntime.run` waits on the
interactive input *and* every advertised listener at once; when input
is ready one command runs to completion, when a listener is ready one
download is accepted and served to completion. While either runs,
nothing else is serviced.

Workflows (each a blocking call):

* :meth:`~PeerRuntime.advertise` — open a listener, register it.
* :meth:`~PeerRuntime.discover_and_fetch` — search, download, then
  advertise the same tag so this peer becomes another provider.
* :meth:`~PeerRuntime.withdraw` — deregister, then close the listener.
* :meth:`~PeerRuntime.enumerate` — read the index catalogue.
* :meth:`~PeerRuntime.shutdown` — withdraw everything best-effort.
"""

from __future__ import annotations

import contextlib
import selectors
from dataclasses import dataclass

import structlog

from tagshare.errors import (
    AlreadyAdvertisedError,
    CapacityError,
    InvalidEntryError,
    NotFoundError,
    TagShareError,
)
from tagshare.net import detect_local_ip, open_listener
from tagshare.p2p.protocol import CONTENT_NAME_LEN, PEER_NAME_LEN, fit_text
from tagshare.peer.advertisements import (
    DEFAULT_MAX_ADVERTISEMENTS,
    Advertisement,
    AdvertisementTable,
)
from tagshare.peer.control import IndexClient, Provider
from tagshare.peer.transfer import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_DATA_TIMEOUT,
    FetchResult,
    ServedDownload,
    fetch_content,
    serve_download,
)
from tagshare.storage import ContentStorage
from tagshare.types import CommandSource

logger = structlog.get_logger()


@dataclass(frozen=True)
class FetchReport:
    """Everything :meth:`PeerRuntime.discover_and_fetch` did."""

    provider: Provider
    result: FetchResult
    advertisement: Advertisement | None = None
    advertise_error: TagShareError | None = None


class PeerRuntime:
    """A peer: its advertised content, its index client and its event loop.

    Args:
        peer_id: Identifier used in every registration (cut to 10 bytes).
        client: Control-channel client for the index.
        storage: Where served content is read and downloads are written.
        advertise_ip: Address to advertise; auto-detected when empty.
        max_advertisements: Size of the local advertisement table.
        data_timeout: Inactivity limit on data connections (seconds).
        chunk_size: Read/write size for streamed content.
        backlog: Listen backlog of each advertised listener.
    """

    def __init__(
        self,
        peer_id: str,
        client: IndexClient,
        storage: ContentStorage,
        *,
        advertise_ip: str | None = None,
        max_advertisements: int = DEFAULT_MAX_ADVERTISEMENTS,
        data_timeout: float = DEFAULT_DATA_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        backlog: int = 5,
    ) -> None:
        self.peer_id = fit_text(peer_id, PEER_NAME_LEN)
        if not self.peer_id:
            raise InvalidEntryError("Peer id must not be empty")
        self.client = client
        self.storage = storage
        self.table = AdvertisementTable(max_advertisements)
        self._advertise_ip = advertise_ip or ""
        self._data_timeout = data_timeout
        self._chunk_size = chunk_size
        self._backlog = backlog
        self._selector = selectors.DefaultSelector()
        self._running = False
        self._shut_down = False

    def advertise_address(self) -> str:
        """The address written into registrations."""
        return self._advertise_ip or detect_local_ip()

    # ── Listener bookkeeping ───────────────────────────────────

    def _watch(self, ad: Advertisement) -> None:
        self._selector.register(ad.listener, selectors.EVENT_READ, ad)

    def _unwatch(self, ad: Advertisement) -> None:
        with contextlib.suppress(KeyError, ValueError):
            self._selector.unregister(ad.listener)

    def _drop(self, ad: Advertisement) -> None:
        self._unwatch(ad)
        self.table.remove(ad.content)

    # ── Workflows ──────────────────────────────────────────────

    def advertise(self, content: str, filename: str | None = None) -> Advertisement:
        """Share *content* with the network.

        When *filename* is given it must equal the content tag: the
        data server looks files up by tag.

        Raises:
            InvalidEntryError: Empty tag or filename mismatch.
            AlreadyAdvertisedError: This peer already serves *content*.
            CapacityError: The local table is full.
            RejectedError: The index refused the registration.
            ControlTimeoutError: The index did not answer.
        """
        content = fit_text(content, CONTENT_NAME_LEN)
        if not content:
            raise InvalidEntryError("Content tag must not be empty")
        if filename is not None and filename != content:
            raise InvalidEntryError(
                "For this peer implementation, filename must equal the content name"
            )
        return self._advertise(content)

    def _advertise(self, content: str) -> Advertisement:
        if self.table.find(content) is not None:
            raise AlreadyAdvertisedError(f"Already serving {content!r}")
        if self.table.is_full:
            raise CapacityError(f"Local table full ({self.table.capacity} items)")

        listener, port = open_listener(backlog=self._backlog)
        ip = self.advertise_address()
        ad = Advertisement(
            peer=self.peer_id, content=content, listener=listener, ip=ip, port=port
        )
        try:
            self.client.register(self.peer_id, content, ip, port)
        except TagShareError as exc:
            listener.close()
            logger.info("registration_failed", content=content, code=exc.code)
            raise

        try:
            self.table.add(ad)
        except CapacityError:
            listener.close()
            with contextlib.suppress(TagShareError):
                self.client.deregister(self.peer_id, content)
            raise

        self._watch(ad)
        self._shut_down = False
        logger.info("content_advertised", content=content, addr=f"{ip}:{port}")
        return ad

    def discover_and_fetch(self, content: str) -> FetchReport:
        """Find a provider of *content*, download it, then advertise it too.

        The follow-up advertisement is attempted whether or not the
        download produced any bytes; its failure is reported in the
        returned :class:`FetchReport`, not raised.

        Raises:
            NotFoundError: No peer advertises *content*.
            ControlTimeoutError: The index did not answer.
            UnexpectedReplyError: The index or provider broke protocol.
            ContentUnavailableError: The provider does not have the file.
            TransferTimeoutError: The provider stalled before the header.
            TransportError: The provider could not be reached.
            LocalStorageError: The download could not be saved.
        """
        content = fit_text(content, CONTENT_NAME_LEN)
        if not content:
            raise InvalidEntryError("Content tag must not be empty")

        provider = self.client.search(self.peer_id, content)
        logger.info(
            "provider_chosen",
            content=content,
            peer=provider.peer,
            addr=f"{provider.ip}:{provider.port}",
        )
        result = fetch_content(
            provider.ip,
            provider.port,
            content,
            self.storage,
            timeout=self._data_timeout,
            chunk_size=self._chunk_size,
        )

        advertisement: Advertisement | None = None
        advertise_error: TagShareError | None = None
        try:
            advertisement = self._advertise(content)
        except TagShareError as exc:
            advertise_error = exc
            logger.info("auto_advertise_failed", content=content, code=exc.code)

        return FetchReport(
            provider=provider,
            result=result,
            advertisement=advertisement,
            advertise_error=advertise_error,
        )

    def withdraw(self, content: str) -> Advertisement:
        """Stop serving *content*.

        The listener is closed only after the index acknowledges; if it
        does not, the advertisement stays and keeps being served.

        Raises:
            NotFoundError: *content* is not advertised here, or the index
                has no matching entry.
            ControlTimeoutError: The index did not answer.
        """
        ad = self.table.find(content)
        if ad is None:
            raise NotFoundError(f"No such content registered locally: {content!r}")
        self.client.deregister(self.peer_id, ad.content)
        self._drop(ad)
        logger.info("content_withdrawn", content=ad.content)
        return ad

    def enumerate(self) -> list[Provider]:
        """Return the index catalogue (empty if the index is silent)."""
        return list(self.client.list_entries())

    def shutdown(self) -> None:
        """Withdraw every advertisement, ignoring failures.

        Does nothing if already shut down with nothing advertised since.
        """
        if self._shut_down:
            return
        for ad in list(self.table):
            try:
                self.client.deregister(self.peer_id, ad.content)
            except TagShareError as exc:
                logger.info("withdraw_failed", content=ad.content, code=exc.code)
            self._drop(ad)
        self._running = False
        self._shut_down = True
        logger.info("peer_shutdown", peer=self.peer_id)

    def close(self) -> None:
        """Shut down and release the selector and index client."""
        self.shutdown()
        self._selector.close()
        self.client.close()

    # ── Event loop ─────────────────────────────────────────────

    def serve(self, ad: Advertisement) -> ServedDownload | None:
        """Accept and answer one download on *ad*'s listener."""
        return serve_download(
            ad.listener,
            self.storage,
            timeout=self._data_timeout,
            chunk_size=self._chunk_size,
        )

    def poll(self, timeout: float | None = None) -> int:
        """Wait once for readiness and handle what is ready.

        Input is handled before listeners; listeners whose advertisement
        went away while the input ran are skipped.

        Returns:
            Number of data connections served.
        """
        events = self._selector.select(timeout)
        quitting = False
        for key, _mask in events:
            if not isinstance(key.data, Advertisement):
                if not key.data.handle_input(self):
                    self._running = False
                    quitting = True

        served = 0
        if quitting:
            return served
        for key, _mask in events:
            ad = key.data
            if not isinstance(ad, Advertisement) or ad not in self.table:
                continue
            if self.serve(ad) is not None:
                served += 1
        return served

    def run(self, console: CommandSource) -> None:
        """Serve *console* commands and downloads until the console quits.

        Every remaining advertisement is withdrawn on the way out.
        """
        self._selector.register(console, selectors.EVENT_READ, console)
        self._running = True
        try:
            while self._running:
                console.show_menu()
                self.poll()
        finally:
            with contextlib.suppress(KeyError, ValueError):
                self._selector.unregister(console)
            self.shutdown()
