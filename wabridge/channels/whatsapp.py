"""WhatsApp source client via wacli.

wacli keeps a whatsmeow session alive with `wacli sync --follow` and
writes every message into a local SQLite store. This client:

- runs and supervises the sync process (restarting it if it dies),
- polls the store for new rows and hands each inbound message to the
  registered handler, one at a time,
- sends text and downloads media by briefly pausing sync, because
  `wacli sync` holds an exclusive lock on the store.

Requires: wacli binary installed and authenticated (`wacli auth`).
"""

import asyncio
import logging
import os
import shutil
import sqlite3
from typing import Awaitable, Callable, Optional

from ..errors import SendFailure
from ..interfaces import (
    CONNECTED,
    DISCONNECTED,
    Contact,
    InboundMessage,
    Media,
    SourceClient,
)

logger = logging.getLogger("wabridge.whatsapp")

_SEND_TIMEOUT = 30
_MEDIA_TIMEOUT = 60
_RESTART_DELAY = 5
_SEEN_MAX = 5000        # max remembered rowids before prune

InboundHandler = Callable[[InboundMessage], Awaitable[None]]
StateHandler = Callable[[bool, str], Awaitable[None]]


def to_jid(address: str) -> str:
    """Bare phone digits become a user JID; JIDs pass through."""
    address = (address or "").strip()
    if "@" in address:
        return address
    return f"{address}@s.whatsapp.net"


def is_group_jid(jid: str) -> bool:
    return (jid or "").endswith("@g.us")


class _PausedSync:
    """Exclusive access to the wacli store: pause sync, run, resume.

    Usage:
        async with _PausedSync(client):
            await client._wacli_send_text(jid, text)
    """

    def __init__(self, client: "WhatsAppClient"):
        self._client = client
        self._was_syncing = False

    async def __aenter__(self):
        await self._client._send_lock.acquire()
        try:
            self._was_syncing = self._client._process is not None
            if self._was_syncing:
                await self._client._stop_sync()
        except BaseException:
            self._client._send_lock.release()
            raise
        return self

    async def __aexit__(self, *exc):
        try:
            if self._client._running and self._was_syncing:
                if not await self._client._start_sync():
                    logger.error("Failed to restart wacli sync after store access")
        finally:
            self._client._send_lock.release()


class WhatsAppClient(SourceClient):
    """WhatsApp bridge using a wacli subprocess and its SQLite store."""

    def __init__(
        self,
        wacli_path: str = "wacli",
        db_path: Optional[str] = None,
        poll_interval: float = 2.0,
        session_db: Optional[str] = None,
    ):
        self._wacli_path = wacli_path
        self._wacli_db = os.path.expanduser(db_path) if db_path else None
        self._session_db = os.path.expanduser(session_db) if session_db else None
        self._poll_interval = poll_interval
        self._process: Optional[asyncio.subprocess.Process] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._restart_task: Optional[asyncio.Task] = None
        self._send_lock = asyncio.Lock()
        self._running = False
        self._connected = False
        self._last_rowid: int = 0
        self._seen_rowids: set[int] = set()
        self._lid_to_pn_cache: dict[str, str] = {}
        self._on_message: Optional[InboundHandler] = None
        self._on_state: Optional[StateHandler] = None

    def set_message_handler(self, handler: InboundHandler):
        self._on_message = handler

    def set_state_handler(self, handler: StateHandler):
        self._on_state = handler

    # ── SourceClient ───────────────────────────────────────────

    def connection_state(self) -> str:
        return CONNECTED if self._running and self._connected else DISCONNECTED

    async def send(self, address: str, text: str):
        """Send a text message. Raises SendFailure."""
        jid = to_jid(address)
        if not text:
            raise SendFailure("empty message")
        try:
            async with _PausedSync(self):
                await self._wacli_send_text(jid, text)
        except SendFailure:
            raise
        except asyncio.TimeoutError as e:
            raise SendFailure(f"wacli send text timed out after {_SEND_TIMEOUT}s") from e
        except OSError as e:
            raise SendFailure(f"wacli send text failed: {e}") from e
        logger.info(f"[whatsapp] sent text to {jid}")

    async def list_contacts(self) -> list[Contact]:
        """Chats seen in the wacli store, most recently active first."""
        if not self._wacli_db:
            return []
        conn = sqlite3.connect(self._wacli_db, timeout=5)
        try:
            cur = conn.execute("""
                SELECT chat_jid, MAX(chat_name) AS chat_name, MAX(rowid) AS last_rowid
                FROM messages
                WHERE chat_jid IS NOT NULL AND chat_jid != ''
                  AND chat_jid != 'status@broadcast'
                GROUP BY chat_jid
                ORDER BY last_rowid DESC
            """)
            rows = cur.fetchall()
        finally:
            conn.close()

        contacts = []
        for chat_jid, chat_name, _ in rows:
            name = (chat_name or "").strip() or chat_jid.split("@", 1)[0]
            contacts.append(Contact(address=chat_jid, name=name, is_group=is_group_jid(chat_jid)))
        return contacts

    # ── Lifecycle ──────────────────────────────────────────────

    def _resolve_wacli(self) -> Optional[str]:
        """Find wacli: explicit path first, then PATH, then Go's bin dir."""
        if os.path.isfile(self._wacli_path) and os.access(self._wacli_path, os.X_OK):
            return self._wacli_path
        found = shutil.which(self._wacli_path)
        if found:
            return found
        candidate = os.path.join(os.environ.get("GOPATH", os.path.expanduser("~/go")), "bin", "wacli")
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
        return None

    def _resolve_wacli_db(self) -> Optional[str]:
        """wacli stores its DB at ~/.wacli/wacli.db for the running user."""
        if self._wacli_db and os.path.isfile(self._wacli_db):
            return self._wacli_db
        default = os.path.expanduser("~/.wacli/wacli.db")
        if os.path.isfile(default):
            return default
        return None

    async def start(self) -> bool:
        """Start sync and the inbound poller. Returns False if wacli is unusable."""
        resolved = self._resolve_wacli()
        if not resolved:
            logger.error("wacli binary not found. Install: go install github.com/steipete/wacli@latest")
            return False
        self._wacli_path = resolved

        self._wacli_db = self._resolve_wacli_db()
        if not self._wacli_db:
            logger.error("wacli database not found — run `wacli auth` first; inbound messages will not work")

        if not self._session_db:
            default = os.path.expanduser("~/.wacli/session.db")
            if os.path.isfile(default):
                self._session_db = default

        self._running = True
        if not await self._start_sync():
            self._running = False
            return False

        if self._wacli_db:
            self._poll_task = asyncio.create_task(self._poll_loop())

        logger.info("WhatsApp client started.")
        await self._set_connected(True)
        return True

    async def stop(self):
        """Stop the poller and the sync process."""
        self._running = False

        if self._restart_task and not self._restart_task.done():
            self._restart_task.cancel()
            try:
                await self._restart_task
            except asyncio.CancelledError:
                pass
        self._restart_task = None

        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        self._poll_task = None

        await self._stop_sync()
        self._connected = False
        logger.info("WhatsApp client stopped.")

    async def _set_connected(self, connected: bool, reason: str = ""):
        changed = connected != self._connected
        self._connected = connected
        if changed and self._on_state:
            try:
                await self._on_state(connected, reason)
            except Exception as e:
                logger.error(f"State handler error: {e}", exc_info=True)

    # ── Sync process ───────────────────────────────────────────

    async def _start_sync(self) -> bool:
        """Start the long-running `wacli sync --follow` process."""
        await self._stop_sync()

        try:
            self._process = await asyncio.create_subprocess_exec(
                self._wacli_path, "sync", "--follow",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except Exception as e:
            logger.error(f"Failed to start wacli sync: {e}")
            self._process = None
            return False

        self._monitor_task = asyncio.create_task(self._monitor_loop())
        return True

    async def _stop_sync(self):
        """Stop the sync process (if any)."""
        # Stop monitor first so it won't treat the exit as a crash
        if self._monitor_task and not self._monitor_task.done():
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
        self._monitor_task = None

        if self._process:
            try:
                self._process.terminate()
                await asyncio.wait_for(self._process.wait(), timeout=5)
            except (asyncio.TimeoutError, ProcessLookupError):
                try:
                    self._process.kill()
                except ProcessLookupError:
                    pass
            self._process = None

    async def _monitor_loop(self):
        """Watch the sync process; report the drop and restart it."""
        try:
            if self._process:
                rc = await self._process.wait()
                if self._running:
                    logger.warning(f"wacli sync exited unexpectedly (rc={rc}), restarting...")
                    await self._set_connected(False, f"wacli sync exited (rc={rc})")
                    self._restart_task = asyncio.create_task(self._restart_sync())
        except asyncio.CancelledError:
            pass

    async def _restart_sync(self):
        await asyncio.sleep(_RESTART_DELAY)
        if not self._running:
            return
        # Same lock as sends: never start sync while a send holds the store
        async with self._send_lock:
            if not self._running:
                return
            if self._process is not None and self._process.returncode is None:
                logger.info("wacli sync already running again, skipping restart")
                started = True
            else:
                logger.info("Restarting wacli sync...")
                started = await self._start_sync()
        if started:
            await self._set_connected(True)
        else:
            logger.error("Failed to restart wacli sync")

    # ── Outbound ───────────────────────────────────────────────

    async def _wacli_send_text(self, jid: str, text: str):
        """Low-level: send a single text message. Caller must hold the store."""
        proc = await asyncio.create_subprocess_exec(
            self._wacli_path, "send", "text",
            "--to", jid,
            "--message", text,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=_SEND_TIMEOUT)
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            raise
        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace") if stderr else ""
            raise SendFailure(f"wacli send text failed (rc={proc.returncode}): {err[:200]}")

    # ── Media download ────────────────────────────────────────

    async def _download_media(self, chat_jid: str, msg_id: str) -> Optional[Media]:
        """Download media via wacli and return its bytes.

        Raises on wacli failure so the caller can tell the operator.
        """
        if not msg_id or not chat_jid or not self._wacli_db:
            return None

        async with _PausedSync(self):
            proc = await asyncio.create_subprocess_exec(
                self._wacli_path, "media", "download",
                "--chat", chat_jid,
                "--id", msg_id,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=_MEDIA_TIMEOUT)
            if proc.returncode != 0:
                err = stderr.decode("utf-8", errors="replace") if stderr else ""
                raise RuntimeError(f"wacli media download failed (rc={proc.returncode}): {err[:200]}")

        conn = sqlite3.connect(self._wacli_db, timeout=5)
        try:
            row = conn.execute(
                "SELECT local_path, mime_type FROM messages WHERE msg_id = ? LIMIT 1",
                (msg_id,),
            ).fetchone()
        finally:
            conn.close()

        if not row or not row[0] or not os.path.isfile(row[0]):
            raise FileNotFoundError(f"Media downloaded but local_path not found for msg_id={msg_id}")

        local_path, mime_type = row
        with open(local_path, "rb") as f:
            data = f.read()
        return Media(
            mimetype=mime_type or "application/octet-stream",
            data=data,
            filename=os.path.basename(local_path),
        )

    # ── Phone numbers ──────────────────────────────────────────

    def _lookup_pn_from_lid(self, lid: str) -> str:
        """Phone digits for a @lid id from wacli's session DB, or "" if unknown."""
        if lid in self._lid_to_pn_cache:
            return self._lid_to_pn_cache[lid]
        if not self._session_db or not os.path.isfile(self._session_db):
            return ""
        try:
            conn = sqlite3.connect(f"file:{self._session_db}?mode=ro", uri=True, timeout=1)
            try:
                row = conn.execute(
                    "SELECT pn FROM whatsmeow_lid_map WHERE lid = ? LIMIT 1", (lid,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.debug(f"LID lookup for {lid} failed: {e}")
            return ""
        pn = str(row[0]) if row and row[0] else ""
        self._lid_to_pn_cache[lid] = pn
        return pn

    def phone_for(self, jid: str) -> str:
        """Phone digits behind a chat JID; "" for groups and unmapped @lid ids."""
        jid = jid or ""
        local, _, server = jid.partition("@")
        local = local.split(":", 1)[0]
        if server == "s.whatsapp.net":
            return local
        if server == "lid":
            return self._lookup_pn_from_lid(local)
        return ""

    # ── Inbound DB poller ─────────────────────────────────────

    def _read_new_rows(self) -> list[sqlite3.Row]:
        conn = sqlite3.connect(self._wacli_db, timeout=5)
        conn.row_factory = sqlite3.Row
        try:
            cur = conn.execute("""
                SELECT rowid, chat_jid, sender_jid, sender_name, chat_name, text,
                       from_me, media_type, mime_type, media_caption, msg_id
                FROM messages
                WHERE rowid > ?
                  AND ((text IS NOT NULL AND text != '') OR media_type IS NOT NULL)
                  AND chat_jid != 'status@broadcast'
                ORDER BY rowid ASC
            """, (self._last_rowid,))
            return cur.fetchall()
        finally:
            conn.close()

    def _row_to_message(self, row) -> InboundMessage:
        chat_jid = row["chat_jid"] or ""
        is_group = is_group_jid(chat_jid)
        msg_id = row["msg_id"]
        has_media = row["media_type"] is not None
        body = (row["text"] or "").strip() or (row["media_caption"] or "").strip()

        async def fetch_media() -> Optional[Media]:
            return await self._download_media(chat_jid, msg_id)

        return InboundMessage(
            address=chat_jid,
            is_group=is_group,
            chat_name=row["chat_name"] or "",
            sender_name=row["sender_name"] or "",
            body=body,
            has_media=has_media,
            from_me=bool(row["from_me"]),
            phone="" if is_group else self.phone_for(chat_jid),
            fetch_media=fetch_media,
        )

    async def _poll_loop(self):
        """Poll the wacli store for new inbound messages.

        SQLite reads are safe while wacli sync writes (WAL mode).
        """
        try:
            conn = sqlite3.connect(self._wacli_db, timeout=5)
            cur = conn.execute("SELECT MAX(rowid) FROM messages")
            self._last_rowid = cur.fetchone()[0] or 0
            conn.close()
            logger.info(f"WhatsApp poller started (last_rowid={self._last_rowid}, db={self._wacli_db})")
        except Exception as e:
            logger.error(f"Failed to read wacli DB: {e}")
            return

        while self._running:
            try:
                await asyncio.sleep(self._poll_interval)
                if not self._running:
                    break
                await self.poll_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in WhatsApp poll loop: {e}", exc_info=True)
                await asyncio.sleep(5)

    async def poll_once(self) -> int:
        """Dispatch every new row once, in order. Returns rows dispatched."""
        rows = self._read_new_rows()
        if rows:
            logger.debug(f"[whatsapp] poll: {len(rows)} new row(s) after rowid {self._last_rowid}")

        dispatched = 0
        for row in rows:
            rowid = row["rowid"]
            self._last_rowid = rowid
            if rowid in self._seen_rowids:
                continue
            self._seen_rowids.add(rowid)

            if bool(row["from_me"]):
                continue

            msg = self._row_to_message(row)
            if self._on_message is None:
                continue
            try:
                await self._on_message(msg)
                dispatched += 1
            except Exception as e:
                logger.error(f"Error handling WhatsApp message (rowid={rowid}): {e}", exc_info=True)

        if len(self._seen_rowids) > _SEEN_MAX:
            self._seen_rowids = set(sorted(self._seen_rowids)[-_SEEN_MAX:])
        return dispatched
