import json

from channels.generic.websocket import AsyncWebsocketConsumer


class AppointmentUpdatesConsumer(AsyncWebsocketConsumer):
    """Pushes appointment events to the connected user's own group.

    Close codes: 4001 unauthenticated or inactive account.
    """

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated or not user.is_active:
            await self.close(code=4001)
            return
        self.group_name = f"appointments.user.{user.pk}"
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "userId": user.pk}))

    async def disconnect(self, close_code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        # read-only stream; answer pings so clients can keep the socket warm
        if text_data and text_data.strip() == "ping":
            await self.send(json.dumps({"type": "pong"}))

    async def appointment_event(self, event):
        # event: {"type": "appointment.event", "event": "booked", "appointment": {...}}
        await self.send(json.dumps(event))
