# Marks `portal.deps` as a package so routers can import
# `from ..deps.services import get_repository`.
