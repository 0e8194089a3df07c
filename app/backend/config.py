CONFIG_AUTH_CLIENT = "auth_client"
CONFIG_CREDENTIAL = "azure_credential"
CONFIG_COSMOS_CLIENT = "cosmos_client"
CONFIG_IDEAS_HUB_ENABLED = "ideas_hub_enabled"
CONFIG_IDEAS_SERVICE = "ideas_service"
CONFIG_IDEAS_SEARCH_SERVICE = "ideas_search_service"
CONFIG_VOTE_COORDINATOR = "vote_coordinator"
CONFIG_CATEGORY_STORE = "category_store"
CONFIG_TEAM_CATEGORY_STORE = "team_category_store"
CONFIG_TEAM_PREFERENCE_STORE = "team_preference_store"
CONFIG_TEAM_TAG_STORE = "team_tag_store"
CONFIG_DIGEST_SCHEDULER = "digest_scheduler"
CONFIG_DIGEST_DELIVERY = "digest_delivery"
