# rides/consumers.py
import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

logger = logging.getLogger(__name__)


class TokenAuthMixin:
    """JWT from ``?token=`` authenticates the socket; the user lands in scope['user']."""

    async def extract_token_from_query(self):
        query_string = self.scope.get('query_string', b'').decode()
        if 'token=' in query_string:
            params = dict(param.split('=', 1) for param in query_string.split('&') if '=' in param)
            return params.get('token')
        return None

    @database_sync_to_async
    def authenticate_with_token(self, token):
        from django.contrib.auth import get_user_model
        from rest_framework_simplejwt.exceptions import TokenError
        from rest_framework_simplejwt.tokens import AccessToken

        User = get_user_model()
        try:
            access_token = AccessToken(token)
            user = User.objects.get(id=access_token['user_id'])
        except (TokenError, KeyError, User.DoesNotExist) as e:
            logger.warning(f"Websocket token authentication failed: {e}")
            return False
        self.scope['user'] = user
        return True

    async def authenticate(self):
        token = await self.extract_token_from_query()
        return bool(token) and await self.authenticate_with_token(token)


class StationConsumer(TokenAuthMixin, AsyncWebsocketConsumer):
    """Live trip board for a station's operators."""

    async def connect(self):
        self.station_id = self.scope['url_route']['kwargs']['station_id']
        self.station_group_name = f'station_{self.station_id}'

        if await self.authenticate() and await self.is_station_operator():
            await self.channel_layer.group_add(self.station_group_name, self.channel_name)
            await self.accept()
        else:
            await self.close()

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.station_group_name, self.channel_name)

    async def receive(self, text_data):
        try:
            message = json.loads(text_data)
        except ValueError:
            return
        if message.get('type') == 'ping':
            await self.send(text_data=json.dumps({'type': 'pong'}))

    async def trip_update(self, event):
        await self.send(text_data=json.dumps(event))

    @database_sync_to_async
    def is_station_operator(self):
        from .models import Operator

        user = self.scope.get('user')
        if user is None or user.is_anonymous:
            return False
        return Operator.objects.filter(user=user, station_id=self.station_id).exists()
