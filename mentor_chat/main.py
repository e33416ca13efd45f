from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager, suppress
import asyncio
import logging
from typing import Optional

from mentor_chat import __version__
from mentor_chat.config import settings
from mentor_chat.database import init_database, close_database
from mentor_chat.websockets import events
from mentor_chat.websockets.chat_server import ChatServer
from mentor_chat.websockets.connection_manager import Connection
from mentor_chat.websockets.events import ChatEventError
from mentor_chat.websockets.presence_manager import PresenceManager
from mentor_chat.websockets.stores import BeanieMessageStore, BeanieUserStore
from mentor_chat.routes import messages

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_chat_server() -> ChatServer:
    """Chat server wired to MongoDB and, when configured, Redis"""
    return ChatServer(
        user_store=BeanieUserStore(),
        message_store=BeanieMessageStore(),
        presence=PresenceManager.from_url(settings.REDIS_URL, settings.PRESENCE_TTL_SECONDS),
    )


async def sweep_idle_connections(chat_server: ChatServer):
    """Periodically drop connections that stopped sending frames"""
    while True:
        await asyncio.sleep(settings.WS_HEARTBEAT_INTERVAL)
        try:
            closed = await chat_server.sweep_idle_connections(settings.WS_CONNECTION_TIMEOUT)
            if closed:
                logger.info(f"Closed {closed} idle connections")
        except Exception as e:
            logger.error(f"Error sweeping idle connections: {e}")


def create_app(chat_server: Optional[ChatServer] = None, use_database: bool = True) -> FastAPI:
    """Build the FastAPI application around a chat server"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        # Startup
        logger.info("Starting up mentor chat backend...")
        if use_database:
            await init_database()
        sweeper = asyncio.create_task(sweep_idle_connections(app.state.chat_server))

        yield

        # Shutdown
        logger.info("Shutting down mentor chat backend...")
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
        await app.state.chat_server.shutdown()
        if app.state.chat_server.presence is not None:
            await app.state.chat_server.presence.close()
        if use_database:
            await close_database()

    app = FastAPI(
        title="Mentor Chat API",
        description="Realtime chat and presence for student/mentor projects",
        version=__version__,
        lifespan=lifespan
    )
    app.state.chat_server = chat_server or build_chat_server()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(messages.router, prefix="/api/chats", tags=["Messages"])

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """WebSocket endpoint for realtime chat"""
        await websocket.accept()
        server: ChatServer = websocket.app.state.chat_server

        connection = Connection(websocket, metadata={
            'ip_address': websocket.client.host if websocket.client else None,
            'user_agent': websocket.headers.get('user-agent'),
        })
        await server.connect(connection)

        try:
            # Main message loop; one frame is fully handled before the next is read
            while True:
                data = await websocket.receive_text()

                if len(data.encode("utf-8")) > settings.MAX_WS_MESSAGE_SIZE:
                    await server.send_error(connection.id, ChatEventError("Frame too large"))
                    continue

                await server.handle_frame(connection.id, data)

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected: {connection.id}")
        except Exception as e:
            logger.error(f"WebSocket connection error for {connection.id}: {e}")
        finally:
            # Clean up connection
            await server.disconnect(connection.id)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "Mentor Chat API",
            "version": __version__,
            "status": "running"
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "timestamp": events.now_iso(),
            "active_connections": len(app.state.chat_server.connections)
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mentor_chat.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
        ws_max_size=settings.MAX_WS_MESSAGE_SIZE,
    )
