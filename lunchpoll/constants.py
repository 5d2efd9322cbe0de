"""Global constants for the lunchpoll application."""

# Collection names
GROUPS_COLLECTION = "groups"
POLLS_COLLECTION = "polls"
USERS_COLLECTION = "users"

# Fields on 'groups' documents
GROUP_ID = "id"
GROUP_NAME = "name"
GROUP_MEMBERS = "members"
GROUP_CREATED_BY = "createdBy"
GROUP_CREATED_AT = "createdAt"
GROUP_RESTAURANTS = "restaurants"
GROUP_POLLS = "polls"

# Fields on restaurant refs inside a group
REF_RESTAURANT_ID = "restaurant_id"
REF_COUNT = "count"

# Fields on 'polls' documents and embedded poll copies
POLL_ID = "id"
POLL_GROUP_ID = "groupId"
POLL_CREATED_BY = "createdBy"
POLL_CREATED_AT = "createdAt"
POLL_IS_ENDED = "isEnded"
# The Android client serializes Kotlin's `isEnded` property as `ended`
POLL_IS_ENDED_LEGACY = "ended"
POLL_RESTAURANTS = "restaurants"

# Fields on restaurant options inside a poll
OPTION_RESTAURANT_ID = "restaurantId"
OPTION_VOTED_USERS = "votedUsers"

# Fields on 'users' documents
USER_EMAIL = "email"
USER_DISPLAY_NAME = "displayName"

# Firestore limits
FIRESTORE_BATCH_LIMIT = 400

# Transaction retry defaults
TRANSACTION_MAX_ATTEMPTS = 5
TRANSACTION_BACKOFF_SECONDS = 0.05

# Event stream and user search
SSE_KEEPALIVE_SECONDS = 15.0
USER_SEARCH_CACHE_SECONDS = 30.0
