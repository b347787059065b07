from routers import auth, clubs, coaches, messages, notifications, players, posts, scouts, users

ROUTERS = (
    auth.router,
    users.router,
    posts.router,
    players.router,
    scouts.router,
    messages.router,
    clubs.router,
    coaches.router,
    notifications.router,
)
