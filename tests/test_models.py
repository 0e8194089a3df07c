from datetime import datetime, timedelta, timezone

from ideas.models import (
    Category,
    DigestFrequency,
    Idea,
    IdeaStatus,
    TeamPreference,
    TeamTag,
    UserVote,
    format_datetime,
    join_semicolon_list,
    parse_datetime,
    split_semicolon_list,
)


def test_split_semicolon_list_drops_blanks():
    assert split_semicolon_list("a; b;;c ;") == ["a", "b", "c"]
    assert split_semicolon_list(["x", " ", "y "]) == ["x", "y"]
    assert split_semicolon_list(None) == []


def test_join_semicolon_list():
    assert join_semicolon_list(["a", " b", ""]) == "a;b"


def test_parse_datetime_formats():
    expected = datetime(2024, 1, 10, tzinfo=timezone.utc)

    assert parse_datetime("2024-01-10T00:00:00Z") == expected
    assert parse_datetime("2024-01-10T00:00:00") == expected
    assert parse_datetime(int(expected.timestamp() * 1000)) == expected
    assert parse_datetime(datetime(2024, 1, 10)) == expected
    assert parse_datetime(None) == datetime.fromtimestamp(0, tz=timezone.utc)


def test_parse_datetime_converts_offsets_to_utc():
    cet = timezone(timedelta(hours=1))

    parsed = parse_datetime(datetime(2024, 1, 10, 1, tzinfo=cet))

    assert parsed.utcoffset() == timedelta(0)
    assert parsed == datetime(2024, 1, 10, tzinfo=timezone.utc)
    assert format_datetime("2024-01-10T01:00:00+01:00") == "2024-01-10T00:00:00+00:00"


def test_idea_dates_are_normalized_to_utc():
    idea = Idea(
        idea_id="idea-1",
        created_by_object_id="owner-1",
        title="Title",
        description="Description",
        created_date=datetime(2024, 1, 10),
        updated_date=datetime(2024, 1, 10, 2, tzinfo=timezone(timedelta(hours=2))),
    )

    assert idea.created_date == datetime(2024, 1, 10, tzinfo=timezone.utc)
    assert idea.to_cosmos_item()["updatedDate"] == "2024-01-10T00:00:00+00:00"


def test_idea_cosmos_item_shape():
    idea = Idea(
        idea_id="idea-1",
        created_by_object_id="owner-1",
        title="Title",
        description="Description",
        tags=["one", "two"],
        total_votes=3,
        etag="etag-1",
    )

    item = idea.to_cosmos_item()

    assert item["id"] == "idea-1"
    assert item["createdByObjectId"] == "owner-1"
    assert item["tags"] == "one;two"
    assert item["status"] == "pending"
    assert item["totalVotes"] == 3
    assert "_etag" not in item and "etag" not in item


def test_idea_from_cosmos_item_reads_etag_and_clamps_votes():
    idea = Idea.from_cosmos_item({
        "id": "idea-1",
        "createdByObjectId": "owner-1",
        "tags": "a;b",
        "status": "approved",
        "totalVotes": -4,
        "updatedDate": "2024-01-10T00:00:00+00:00",
        "_etag": '"0x1"',
    })

    assert idea.idea_id == "idea-1"
    assert idea.tags == ["a", "b"]
    assert idea.status == IdeaStatus.APPROVED
    assert idea.total_votes == 0
    assert idea.etag == '"0x1"'


def test_unknown_status_defaults_to_pending():
    assert Idea.from_cosmos_item({"id": "x", "status": "archived"}).status == IdeaStatus.PENDING


def test_only_pending_ideas_can_be_edited():
    idea = Idea(idea_id="i", created_by_object_id="o", title="t", description="d")

    assert idea.can_be_edited()
    idea.status = IdeaStatus.REJECTED
    assert not idea.can_be_edited()


def test_search_document_keeps_tags_as_list():
    idea = Idea(idea_id="i", created_by_object_id="o", title="t", description="d", tags=["a"])

    assert idea.to_search_document()["tags"] == ["a"]


def test_user_vote_is_keyed_by_idea():
    item = UserVote(user_id="user-1", idea_id="idea-1").to_cosmos_item()

    assert item["id"] == "idea-1"
    assert item["userId"] == "user-1"


def test_category_round_trip_uses_stored_names():
    item = Category(category_id="c", name="Tools", description="All tools").to_cosmos_item()

    assert item["categoryName"] == "Tools"
    assert Category.from_cosmos_item(item).description == "All tools"


def test_team_preference_frequency_is_case_insensitive():
    preference = TeamPreference.from_cosmos_item({"teamId": "t", "digestFrequency": "Monthly", "categories": "a;b"})

    assert preference.digest_frequency == DigestFrequency.MONTHLY
    assert preference.categories == ["a", "b"]


def test_team_preference_unknown_frequency_defaults_to_weekly():
    preference = TeamPreference.from_cosmos_item({"teamId": "t", "digestFrequency": "daily"})

    assert preference.digest_frequency == DigestFrequency.WEEKLY


def test_team_tag_round_trip_keeps_tags():
    team_tag = TeamTag(team_id="team-1", tags=["ux", "api"], created_by_name="Ada")

    item = team_tag.to_cosmos_item()
    restored = TeamTag.from_cosmos_item(item)

    assert item["tags"] == "ux;api"
    assert restored.tags == ["ux", "api"]
    assert restored.created_by_name == "Ada"
    assert team_tag.to_dict()["tags"] == ["ux", "api"]
