"""Matrix service.

Connects the agent identity to a homeserver through nio, joins the
coordinator room and relays room messages as local "activity" events.

nio callbacks only translate and enqueue; a single dispatch task consumes
the queue and owns all registry and index mutations.
"""

import asyncio
import logging
from datetime import datetime, timezone

import aiohttp
import nio

from fabric_matrix import rooms
from fabric_matrix.actors import ActorRegistry, LocalState, Status
from fabric_matrix.config import DEFAULTS, merge_settings, sync_limit
from fabric_matrix.emitter import EventEmitter
from fabric_matrix.errors import (
    EventNotFound,
    ExternalCallError,
    ProtocolViolation,
    ValidationError,
)
from fabric_matrix.events import (
    MESSAGE_TYPE,
    PREPARED,
    REACTION_TYPE,
    MembershipChange,
    SyncStatus,
    TimelineEvent,
    membership_from_nio,
    timeline_event_from_nio,
)
from fabric_matrix.index import EventIndex, IndexEntry
from fabric_matrix.key import Key
from fabric_matrix.messages import Message
from fabric_matrix.report import ActorRegistration, ConnectReport, StepStatus
from fabric_matrix.store import get_store_path, load_credentials, save_credentials

logger = logging.getLogger(__name__)

STATE_EVENT_TYPE = "pub.fabric.state"


class MatrixService(EventEmitter):
    """Relay between a Matrix homeserver and the local event stream.

    Local events: log, error, message, warning, activity, ready, prepared,
    actor.
    """

    def __init__(self, settings: dict = None, client=None):
        """
        Args:
            settings: Overrides for config.DEFAULTS
            client: A ready nio.AsyncClient (or stand-in). Created from the
                settings when omitted.
        """
        super().__init__()
        self.settings = merge_settings(DEFAULTS, settings or {})
        self.key = Key(self.settings.get("seed"))
        self.client = client if client is not None else self._create_client()

        self._state = LocalState()
        self.registry = ActorRegistry(self._state)
        self.index = EventIndex()

        self._inbox = asyncio.Queue()
        self._tasks = []
        self._prepared = False

    def _create_client(self):
        encryption = bool(self.settings.get("encryption"))
        client_config = nio.AsyncClientConfig(
            # Sync tokens are only kept in the key store
            store_sync_tokens=encryption,
            encryption_enabled=encryption,
        )
        client = nio.AsyncClient(
            homeserver=self.settings["homeserver"],
            user=self.settings["handle"],
            device_id=self.settings.get("device_id") or "",
            store_path=str(get_store_path(self.settings)) if encryption else "",
            config=client_config,
        )

        token = self.settings.get("token")
        if token:
            self._restore_session(client, self.settings["handle"], self.settings.get("device_id"), token)
        return client

    def _restore_session(self, client, user_id: str, device_id: str | None, token: str):
        if self.settings.get("encryption") and device_id:
            # Loads the key store as well
            client.restore_login(user_id=user_id, device_id=device_id, access_token=token)
        else:
            client.user_id = user_id
            client.access_token = token
            if device_id:
                client.device_id = device_id

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self.registry.ensure_user(self.settings["handle"]).id

    @property
    def status(self) -> Status:
        return self._state.status

    @property
    def state(self) -> LocalState:
        return self._state

    @property
    def statehash(self) -> str:
        return self._state.statehash

    @property
    def coordinator(self) -> str:
        return self.settings["coordinator"]

    # ------------------------------------------------------------------
    # Local event stream helpers
    # ------------------------------------------------------------------

    def _log(self, message: str):
        logger.info(message)
        self.emit("log", message)

    def _warn(self, message: str):
        logger.warning(message)
        self.emit("warning", message)

    def _error(self, error):
        logger.error("%s", error.data if isinstance(error, Message) else error)
        self.emit("error", error)

    # ------------------------------------------------------------------
    # Outward calls
    # ------------------------------------------------------------------

    async def _call(self, operation: str, awaitable):
        """Await an outward call under the configured deadline.

        Raises:
            ExternalCallError on nio error responses, transport errors
            and timeouts
        """
        timeout = self.settings.get("timeout") or None
        try:
            response = await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ExternalCallError(operation, f"timed out after {timeout}s") from e
        except (aiohttp.ClientError, OSError) as e:
            raise ExternalCallError(operation, str(e)) from e

        if isinstance(response, nio.ErrorResponse):
            raise ExternalCallError(operation, response.message, response.status_code)
        return response

    def _http_config(self) -> dict:
        return {
            "homeserver": self.settings["homeserver"],
            "token": getattr(self.client, "access_token", None) or self.settings.get("token"),
        }

    # ------------------------------------------------------------------
    # Inbound: nio callbacks -> queue -> dispatch
    # ------------------------------------------------------------------

    def _register_callbacks(self):
        self.client.add_response_callback(self._on_sync_response, (nio.SyncResponse, nio.SyncError))
        self.client.add_event_callback(self._on_timeline_event, nio.Event)
        self.client.add_event_callback(self._on_invite_event, nio.InviteMemberEvent)

    def enqueue(self, event):
        """Queue an inbound event for the dispatch loop."""
        self._inbox.put_nowait(event)

    async def _on_sync_response(self, response):
        if isinstance(response, nio.SyncResponse):
            self.enqueue(SyncStatus(PREPARED))
        else:
            self.enqueue(SyncStatus(f"ERROR {getattr(response, 'message', response)}"))

    async def _on_timeline_event(self, room, event):
        self.enqueue(timeline_event_from_nio(room, event))
        if isinstance(event, nio.RoomMemberEvent):
            self.enqueue(membership_from_nio(room, event))

    async def _on_invite_event(self, room, event):
        self.enqueue(membership_from_nio(room, event))

    async def dispatch(self, event):
        """Handle a single inbound event.

        Raises:
            ProtocolViolation for any sync status other than PREPARED
        """
        if isinstance(event, SyncStatus):
            await self._handle_client_sync(event.status)
        elif isinstance(event, TimelineEvent):
            await self._handle_room_timeline(event)
        elif isinstance(event, MembershipChange):
            await self._handle_membership(event)
        else:
            self._warn(f"Unhandled inbound event: {type(event).__name__}")

    async def _dispatch_loop(self):
        while True:
            event = await self._inbox.get()
            try:
                await self.dispatch(event)
            finally:
                self._inbox.task_done()

    async def _handle_client_sync(self, status: str):
        if status.strip() != PREPARED:
            message = f"Unhandled sync event state: {status}"
            self._error(Message.from_vector(["GenericError", {"message": message}]))
            raise ProtocolViolation(message)

        if self._prepared or self.status in (Status.STOPPING, Status.STOPPED):
            return
        self._prepared = True

        self.emit("message", Message.from_vector(["MatrixClientSync", {
            "created": datetime.now(timezone.utc).isoformat(),
            "status": status,
        }]))
        self.emit("prepared", status)

        self._state.status = Status.STARTED
        await self.sync_state()
        self._log("[SERVICES:MATRIX] Started!")
        self.emit("ready")

    async def _handle_room_timeline(self, event: TimelineEvent):
        self.index.add(event)
        actor = self.registry.ensure_user(event.sender)

        # History delivered with the first sync arrives ahead of PREPARED
        if not self._prepared or event.backfill:
            return

        if event.type == MESSAGE_TYPE:
            await self.sync_state()
            self.emit("activity", {
                "actor": actor.id,
                "object": {
                    "id": event.event_id,
                    "content": event.body,
                },
                "target": f"/rooms/{event.room_id}",
            })
        else:
            self._warn(f"Unhandled Matrix message type: {event.type}")

    async def _handle_membership(self, event: MembershipChange):
        if event.membership != "invite" or event.user_id != self.settings["handle"]:
            return
        if not self.settings.get("autojoin"):
            self._log(f"Ignoring invite to {event.room_id} (autojoin disabled)")
            return

        self._log(f"Accepting invite to {event.room_id} from {event.sender}")
        try:
            await self._call("join", self.client.join(event.room_id))
        except ExternalCallError as e:
            self._error(f"Could not join {event.room_id}: {e}")

    async def sync_state(self) -> dict:
        """Publish the state hash to the coordinator when "publish" is set."""
        statehash = self.statehash
        if self.settings.get("publish") and self.status == Status.STARTED:
            content = {"statehash": statehash, "actors": len(self.registry)}
            try:
                await self._call(
                    "room_put_state",
                    self.client.room_put_state(self.coordinator, STATE_EVENT_TYPE, content),
                )
            except ExternalCallError as e:
                self._error(f"Could not publish state: {e}")
        logger.debug("State hash: %s", statehash)
        return {"statehash": statehash}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        """Start the service.

        With "connect" set this authenticates, joins the coordinator and
        starts syncing; the service becomes STARTED on the first sync.
        Without it the service prepares itself locally.

        Raises:
            ProtocolViolation if the service was already started
            ExternalCallError if authentication or the coordinator join fails
        """
        if self.status != Status.READY:
            raise ProtocolViolation(f"Cannot start from status {self.status.value}")

        self._state.status = Status.STARTING
        self._log("[SERVICES:MATRIX] Starting...")

        self._register_callbacks()
        self._tasks.append(asyncio.create_task(self._dispatch_loop(), name="matrix-dispatch"))

        if not self.settings.get("connect"):
            self.enqueue(SyncStatus(PREPARED))
            return self

        try:
            await self._authenticate()
            await self._resolve_coordinator()
            self._log(f"Joining coordinator: {self.coordinator}")
            await self._call("join", self.client.join(self.coordinator))
        except Exception:
            await self._cancel_tasks()
            await self.client.close()
            self._state.status = Status.STOPPED
            raise

        self._tasks.append(asyncio.create_task(self._sync_forever(), name="matrix-sync"))
        return self

    async def _authenticate(self):
        if getattr(self.client, "access_token", None):
            return

        creds = load_credentials(self.settings)
        if creds and creds.get("user_id") == self.settings["handle"]:
            self._restore_session(self.client, creds["user_id"], creds.get("device_id"), creds["access_token"])
            self._log(f"Restored stored session for {creds['user_id']}")
            return

        if self.settings.get("password"):
            username = self.settings.get("username") or self.settings["handle"]
            await self.login(username, self.settings["password"])

    async def _resolve_coordinator(self):
        if not self.coordinator.startswith("#"):
            return
        try:
            room_id = await self._call(
                "directory/room",
                rooms.resolve_room_alias(self._http_config(), self.coordinator),
            )
        except ValueError as e:
            raise ExternalCallError("directory/room", str(e)) from e
        self._log(f"Resolved {self.coordinator} -> {room_id}")
        self.settings["coordinator"] = room_id

    async def _sync_forever(self):
        await self.client.sync_forever(
            timeout=30000,
            full_state=True,
            first_sync_filter={"room": {"timeline": {"limit": sync_limit(self.settings)}}},
        )

    async def run(self):
        """Start the service and block until it stops or fails."""
        await self.start()
        try:
            done, _ = await asyncio.wait(self._tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                if not task.cancelled() and task.exception():
                    raise task.exception()
        finally:
            await self.stop()

    async def _cancel_tasks(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def stop(self):
        """Stop the service. STOPPED is terminal."""
        if self.status == Status.STOPPED:
            return self

        self._state.status = Status.STOPPING
        self._log("[SERVICES:MATRIX] Stopping...")
        await self._cancel_tasks()
        await self.client.close()
        await self.drain()
        self._state.status = Status.STOPPED
        self._log("[SERVICES:MATRIX] Stopped!")
        return self

    # ------------------------------------------------------------------
    # Command surface
    # ------------------------------------------------------------------

    async def send(self, message, channel: str = None) -> dict:
        """Post a text message.

        Args:
            message: Text, or an activity dict carrying object.content
            channel: Room ID, defaults to the coordinator

        Returns:
            {"matrix": {"event_id": ..., "room_id": ...}}
        """
        channel = channel or self.coordinator
        if isinstance(message, dict):
            obj = message.get("object")
            body = obj.get("content") if isinstance(obj, dict) else obj
        else:
            body = message
        if body is None:
            raise ValidationError("Message content is required.")

        content = {"msgtype": "m.text", "body": str(body)}
        response = await self._call("room_send", self.client.room_send(
            room_id=channel,
            message_type=MESSAGE_TYPE,
            content=content,
            ignore_unverified_devices=True,
        ))
        return {"matrix": {"event_id": response.event_id, "room_id": channel}}

    async def alert(self, text: str) -> dict:
        return await self.send({"object": {"content": text}})

    def _lookup(self, event_id: str) -> IndexEntry:
        entry = self.index.get(event_id)
        if entry is None:
            raise EventNotFound(event_id)
        return entry

    def get_event(self, event_id: str) -> TimelineEvent | None:
        entry = self.index.get(event_id)
        return entry.event if entry else None

    def get_reactions(self, event_id: str) -> list:
        """Return [{"user_id", "key"}] for reactions seen on an event."""
        return self.index.reactions(event_id)

    async def react(self, event_id: str, emoji: str) -> dict:
        """Annotate a known event with an emoji.

        Raises:
            EventNotFound if the event was never seen on a timeline
        """
        entry = self._lookup(event_id)
        content = {
            "m.relates_to": {
                "rel_type": "m.annotation",
                "event_id": event_id,
                "key": emoji,
            }
        }
        response = await self._call("room_send", self.client.room_send(
            room_id=entry.room_id,
            message_type=REACTION_TYPE,
            content=content,
            ignore_unverified_devices=True,
        ))
        return {"object": {"id": response.event_id}}

    async def redact(self, event_id: str, reason: str = None) -> dict:
        """Redact a known event.

        Raises:
            EventNotFound if the event was never seen on a timeline
        """
        entry = self._lookup(event_id)
        response = await self._call(
            "room_redact",
            self.client.room_redact(entry.room_id, event_id, reason=reason),
        )
        return {"object": {"id": response.event_id}}

    async def login(self, username: str, password: str):
        """Log in with a password.

        The session is stored for restarts; a store failure is reported on
        "error" and does not fail the login.

        Raises:
            ExternalCallError if the homeserver refuses the login
        """
        self.client.user = username
        response = await self._call("login", self.client.login(
            password=password,
            device_name=self.settings.get("device_name"),
        ))
        self._log(f"Logged in as {response.user_id} ({response.device_id})")
        try:
            save_credentials(self.settings, response.user_id, response.device_id, response.access_token)
        except OSError as e:
            self._error(f"Could not store credentials for {response.user_id}: {e}")
        return response

    async def register(self, username: str, password: str):
        """Register an account, best effort.

        Returns:
            The registration response, or None if the homeserver refused

        Raises:
            ValidationError if username or password is missing
        """
        if not username:
            raise ValidationError("Must provide username.")
        if not password:
            raise ValidationError("Must provide password.")

        self._log(f"Trying registration: {username}")
        try:
            return await self._call("register", self.client.register(
                username, password, self.settings.get("device_name"),
            ))
        except ExternalCallError as e:
            self._error(f"Could not register {username}: {e}")
            return None

    async def check_username_available(self, username: str) -> bool:
        self._log(f"Checking username: {username}")
        return await self._call(
            "register/available",
            rooms.check_username_available(self._http_config(), username),
        )

    async def register_actor(self, obj: dict) -> ActorRegistration:
        """Register an actor on the network.

        Args:
            obj: Must carry a hex "pubkey"; "password" is optional and is
                never stored

        Raises:
            ValidationError if pubkey is missing
        """
        if not obj or not obj.get("pubkey"):
            raise ValidationError('Field "pubkey" is required.')

        # The actor id is bound to the pubkey alone
        memory = {k: v for k, v in obj.items() if k != "password"}
        actor = self.registry.register(obj["pubkey"], memory)

        report = None
        if self.settings.get("connect"):
            report = await self._connect_actor(obj["pubkey"], obj.get("password") or self.key.hashpass)

        self._log(f"Actor Registered: {actor.id}")
        self.emit("actor", actor.id)
        return ActorRegistration(actor_id=actor.id, data=actor.data, report=report)

    async def _connect_actor(self, username: str, password: str) -> ConnectReport:
        report = ConnectReport(username=username)

        available = False
        try:
            self._log(f"Checking availability: {username}")
            available = await self.check_username_available(username)
            self.emit("message", Message.from_vector(["OracleBoolean", available]))
            report.record("availability", StepStatus.SUCCESS, detail=available)
        except ExternalCallError as e:
            self._error(f"Could not check availability: {e}")
            report.record("availability", StepStatus.FAILURE, error=str(e))

        if available:
            registration = await self.register(username, password)
            if registration is None:
                report.record(
                    "registration", StepStatus.AMBIGUOUS,
                    error="registration refused; the account may already exist",
                )
            else:
                report.record("registration", StepStatus.SUCCESS, detail=getattr(registration, "user_id", None))
        else:
            report.record("registration", StepStatus.SKIPPED)

        try:
            self._log(f"Trying login: {username}")
            await self.login(username, password)
            report.record("login", StepStatus.SUCCESS)
        except ExternalCallError as e:
            self._error(f"Could not authenticate with coordinator: {e}")
            report.record("login", StepStatus.FAILURE, error=str(e))

        try:
            self._log(f"Trying join room: {self.coordinator}")
            await self._call("join", self.client.join(self.coordinator))
            report.record("join", StepStatus.SUCCESS)
        except ExternalCallError as e:
            self._error(f"Could not join coordinator: {e}")
            report.record("join", StepStatus.FAILURE, error=str(e))

        return report

    async def get_display_name(self) -> str | None:
        response = await self._call("get_displayname", self.client.get_displayname(self.settings["handle"]))
        return response.displayname

    async def set_display_name(self, name: str):
        if not name:
            raise ValidationError("Must provide a display name.")
        return await self._call("set_displayname", self.client.set_displayname(name))

    async def get_profile(self, user_id: str = None) -> dict:
        response = await self._call("get_profile", self.client.get_profile(user_id or self.settings["handle"]))
        return {"displayname": response.displayname, "avatar_url": response.avatar_url}

    async def get_joined_rooms(self) -> list:
        response = await self._call("joined_rooms", self.client.joined_rooms())
        return list(response.rooms)

    def get_room(self, room_id: str):
        return self.client.rooms.get(room_id)

    def get_room_members(self, room_id: str = None) -> list | None:
        """Member user ids of a synced room (the coordinator by default)."""
        room = self.get_room(room_id or self.coordinator)
        if room is None:
            return None
        return sorted(room.users)

    async def list_public_rooms(self, limit: int = None) -> list:
        try:
            return await self._call(
                "publicRooms",
                rooms.list_public_rooms(self._http_config(), limit=limit),
            )
        except ValueError as e:
            raise ExternalCallError("publicRooms", str(e)) from e
