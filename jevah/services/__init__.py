# Services package.
#
# One module per resource, each a set of async functions that own the
# business rules and database access for that resource:
#
#   user_service          profiles, admin user management, stats
#   admin_service         bans, roles, moderation queue, audit log, analytics
#   forum_service         forums, posts, post likes
#   poll_service          polls and votes
#   prayer_service        prayer wall posts, likes, threaded comments
#   comment_service       comments on media, prayers and forum posts
#   interaction_service   like toggles and share/view records
#   bookmark_service      saved media
#   media_service         media library listing and registration
#   report_service        user reports against media and their review
#   audio_service         copyright-free song library
#   playback_service      playback sessions and library progress
#   notification_service  in-app notifications and preferences
#   push_service          Expo device tokens and push delivery
#   search_service        unified search, suggestions, trending
#
# All service functions take an AsyncSession as their first argument,
# flush but never commit (the get_db dependency owns the transaction),
# and raise jevah.errors exceptions instead of HTTPException.
