# drivers/consumers.py
import json

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from rides.consumers import TokenAuthMixin


class DriverConsumer(TokenAuthMixin, AsyncWebsocketConsumer):
    async def connect(self):
        self.driver_id = self.scope['url_route']['kwargs']['driver_id']
        self.driver_group_name = f'driver_{self.driver_id}'

        # Only the driver themselves may listen on their group
        if await self.authenticate() and await self.is_valid_driver():
            await self.channel_layer.group_add(self.driver_group_name, self.channel_name)
            await self.accept()
        else:
            await self.close()

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.driver_group_name, self.channel_name)

    async def receive(self, text_data):
        try:
            message = json.loads(text_data)
        except ValueError:
            await self.send(text_data=json.dumps({'type': 'error', 'message': 'Invalid JSON'}))
            return

        message_type = message.get('type')
        if message_type not in ('accept_trip', 'decline_trip') or not message.get('trip_id'):
            await self.send(text_data=json.dumps({'type': 'error', 'message': 'Unknown message'}))
            return

        event = 'accept' if message_type == 'accept_trip' else 'decline'
        result = await self.run_lifecycle(event, message['trip_id'])
        response = result.as_dict()
        response['type'] = f'{event}_result'
        await self.send(text_data=json.dumps(response))

    async def trip_assigned(self, event):
        await self.send(text_data=json.dumps(event))

    async def trip_unassigned(self, event):
        await self.send(text_data=json.dumps(event))

    @database_sync_to_async
    def run_lifecycle(self, event, trip_id):
        from rides.lifecycle import trip_lifecycle
        from rides.models import Driver

        driver = Driver.objects.get(id=self.driver_id)
        if event == 'accept':
            return trip_lifecycle.accept(trip_id, driver)
        return trip_lifecycle.decline(trip_id, driver)

    @database_sync_to_async
    def is_valid_driver(self):
        from django.core.exceptions import ValidationError
        from rides.models import Driver

        user = self.scope.get('user')
        if user is None or user.is_anonymous:
            return False
        try:
            return Driver.objects.filter(id=self.driver_id, user=user, is_active=True).exists()
        except ValidationError:
            return False
