"""
Cache key factory.

Keys are tuples from general to specific so that invalidating a prefix such
as ``('flipbooks',)`` reaches every flipbook query. Flipbook writes only touch
the owner's lists; rendered pages are dropped per flipbook on delete.
"""

USERS = ('users',)
FLIPBOOKS = ('flipbooks',)
ANALYTICS = ('analytics',)
AUTH_SESSION = ('auth', 'session')
AUTH_PROFILE = ('auth', 'profile')


def user_profile(user_id):
    return USERS + ('profile', user_id)


def flipbooks_by_user(user_id):
    return FLIPBOOKS + ('user', user_id)


def flipbook_detail(flipbook_id):
    return FLIPBOOKS + ('detail', flipbook_id)


def flipbook_pages(flipbook_id):
    return FLIPBOOKS + ('pages', flipbook_id)


def public_flipbooks():
    return FLIPBOOKS + ('public',)


def flipbook_stats(flipbook_id):
    return ANALYTICS + ('flipbook', flipbook_id)


def user_stats(user_id):
    return ANALYTICS + ('user', user_id)


def flipbook_invalidation_keys(user_id):
    return [flipbooks_by_user(user_id), public_flipbooks(), user_stats(user_id)]


def profile_invalidation_keys(user_id):
    return [user_profile(user_id), AUTH_PROFILE]
