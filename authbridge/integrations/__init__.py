"""
Runtime integrations.

Import the one matching your app:
    from authbridge.integrations.starlette import StarletteAuth
    from authbridge.integrations.aiohttp import AiohttpAuth
"""
