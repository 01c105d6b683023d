"""
Tests for sync/snapshot.py: row <-> wire conversion and snapshot comparison.
"""
from sync.snapshot import build_snapshot, from_wire, snapshot_rows, snapshots_equal, to_wire


CARD_ROW = {
    'card_id': 'c1', 'deck_id': 'd1', 'front': 'hola', 'back': 'hello',
    'pronunciation': None, 'part_of_speech': 'interjection',
    'definition': ['hello'], 'example_sentence_target': None,
    'notes': None, 'audio_src': None, 'is_deleted': False,
    'repetition': 1, 'easiness_factor': 2.5, 'interval': 1,
    'due_date': '2024-05-02T09:30:00.000Z',
}


class TestWireCodec:
    def test_card_keys_are_camel_case(self):
        item = to_wire('card', CARD_ROW)
        assert item['id'] == 'c1'
        assert item['deckId'] == 'd1'
        assert item['partOfSpeech'] == 'interjection'
        assert item['easinessFactor'] == 2.5
        assert item['dueDate'] == '2024-05-02T09:30:00.000Z'
        assert item['isDeleted'] is False

    def test_none_fields_omitted(self):
        item = to_wire('card', CARD_ROW)
        assert 'pronunciation' not in item
        assert 'exampleSentenceTarget' not in item

    def test_from_wire_restores_row(self):
        assert from_wire('card', to_wire('card', CARD_ROW)) == CARD_ROW

    def test_from_wire_coerces_flags_and_lists(self):
        row = from_wire('card', {'id': 'c1', 'isDeleted': 1, 'definition': 'single'})
        assert row['is_deleted'] is True
        assert row['definition'] == ['single']

    def test_missing_is_deleted_means_live(self):
        assert from_wire('deck', {'id': 'd1', 'name': 'Verbs'})['is_deleted'] is False


class TestSnapshotRows:
    def test_build_and_decode(self):
        snap = build_snapshot(
            decks=[{'deck_id': 'd1', 'name': 'Verbs', 'is_deleted': False}],
            cards=[CARD_ROW],
            logs=[{'card_id': 'c1', 'date': '2024-05-01', 'rating': 'GOOD'}],
            profile={'xp': 3, 'level': 1, 'first_name': 'Ana'},
            achievements=[{'achievement_id': 'first_card', 'date_earned': '2024-05-01'}],
        )
        assert snap['studyHistory'] == [{'cardId': 'c1', 'date': '2024-05-01', 'rating': 'GOOD'}]
        assert snap['userProfile']['firstName'] == 'Ana'
        assert snap['userAchievements'][0]['achievementId'] == 'first_card'

        rows = snapshot_rows(snap)
        assert rows['cards'][0] == CARD_ROW
        assert rows['userProfile']['xp'] == 3

    def test_daily_goals_travel_with_profile(self):
        goals = {'date': '2024-05-01', 'goals': [{'id': 'study-2024-05-01', 'progress': 3}], 'allCompleteAwarded': False}
        snap = build_snapshot([], [], [], {'xp': 3, 'daily_goals': goals}, [])
        assert snap['userProfile']['dailyGoals'] == goals
        assert snapshot_rows(snap)['userProfile']['daily_goals'] == goals

    def test_malformed_daily_goals_dropped(self):
        rows = snapshot_rows({'userProfile': {'xp': 1, 'dailyGoals': 'junk'}})
        assert rows['userProfile']['daily_goals'] is None

    def test_non_objects_dropped(self):
        rows = snapshot_rows({'decks': [{'id': 'd1'}, 'junk', None], 'userProfile': 'junk'})
        assert len(rows['decks']) == 1
        assert rows['userProfile'] is None

    def test_empty_snapshot(self):
        rows = snapshot_rows(None)
        assert rows['cards'] == [] and rows['userProfile'] is None


class TestSnapshotsEqual:
    def test_order_doesnt_matter(self):
        a = {'decks': [{'id': 'd1', 'name': 'A'}, {'id': 'd2', 'name': 'B'}]}
        b = {'decks': [{'id': 'd2', 'name': 'B'}, {'id': 'd1', 'name': 'A'}]}
        assert snapshots_equal(a, b)

    def test_duplicate_logs_dont_matter(self):
        log = {'cardId': 'c1', 'date': '2024-05-01', 'rating': 'GOOD'}
        assert snapshots_equal({'studyHistory': [log]}, {'studyHistory': [log, dict(log)]})

    def test_field_change_detected(self):
        a = {'cards': [{'id': 'c1', 'front': 'a'}]}
        b = {'cards': [{'id': 'c1', 'front': 'b'}]}
        assert not snapshots_equal(a, b)

    def test_tombstone_change_detected(self):
        a = {'decks': [{'id': 'd1', 'isDeleted': False}]}
        b = {'decks': [{'id': 'd1', 'isDeleted': True}]}
        assert not snapshots_equal(a, b)

    def test_missing_list_equals_empty_list(self):
        a = {'cards': [{'id': 'c1'}]}
        b = {'cards': [{'id': 'c1', 'definition': []}]}
        assert snapshots_equal(a, b)
