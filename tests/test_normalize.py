import unittest
from datetime import datetime, timezone

from normalize.models import StoryRecord, Status, Priority, UNASSIGNED
from normalize.util import normalize_story, normalize_status, normalize_priority, parse_hours, parse_date


class TestNormalize(unittest.TestCase):
    def test_normalize_story_camel_case_columns(self):
        raw = {
            'id': 'ST-1',
            'description': 'Login page',
            'epicDescription': 'Auth',
            'projectDescription': 'Portal',
            'dueDate': '2025-03-15',
            'duration': '16',
            'timeSpent': '4.5',
            'status': 'In Progress',
            'priority': 'High',
        }
        story = normalize_story(raw)
        self.assertEqual(story.id, 'ST-1')
        self.assertEqual(story.description, 'Login page')
        self.assertEqual(story.epic_description, 'Auth')
        self.assertEqual(story.project_description, 'Portal')
        self.assertEqual(story.due_date, datetime(2025, 3, 15, tzinfo=timezone.utc))
        self.assertEqual(story.duration, 16.0)
        self.assertEqual(story.time_spent, 4.5)
        self.assertIs(story.status, Status.IN_PROGRESS)
        self.assertIs(story.priority, Priority.HIGH)
        self.assertTrue(story.is_active)

    def test_normalize_story_title_case_columns(self):
        raw = {'ID': 101.0, 'Description': 'Export', 'Due Date': '2025-04-01', 'Status': 'todo'}
        story = normalize_story(raw)
        self.assertEqual(story.id, '101')
        self.assertEqual(story.epic_description, UNASSIGNED)
        self.assertEqual(story.project_description, UNASSIGNED)
        self.assertIs(story.status, Status.TODO)
        self.assertIs(story.priority, Priority.MEDIUM)

    def test_normalize_story_empty_row(self):
        story = normalize_story({})
        self.assertEqual(story.id, '')
        self.assertIsNone(story.due_date)
        self.assertEqual(story.duration, 0.0)
        self.assertIs(story.status, Status.TODO)

    def test_status_aliases(self):
        self.assertIs(normalize_status('wontdo'), Status.WONT_DO)
        self.assertIs(normalize_status("Won't Do"), Status.WONT_DO)
        self.assertIs(normalize_status('INTEST'), Status.IN_TEST)
        self.assertIs(normalize_status(' in deploy '), Status.IN_DEPLOY)
        self.assertIs(normalize_status('Reopen'), Status.REOPEN)
        self.assertIs(normalize_status(None), Status.TODO)

    def test_unknown_status_kept_raw(self):
        status = normalize_status('  Blocked ')
        self.assertEqual(status, 'Blocked')
        self.assertNotIsInstance(status, Status)
        self.assertFalse(StoryRecord(id='x', status=status).is_active)

    def test_priority_aliases(self):
        self.assertIs(normalize_priority('H'), Priority.HIGH)
        self.assertIs(normalize_priority('med'), Priority.MEDIUM)
        self.assertIs(normalize_priority('low'), Priority.LOW)
        self.assertIs(normalize_priority('urgent'), Priority.MEDIUM)
        self.assertIs(normalize_priority(''), Priority.MEDIUM)

    def test_parse_hours(self):
        self.assertEqual(parse_hours('8'), 8.0)
        self.assertEqual(parse_hours(2.5), 2.5)
        self.assertEqual(parse_hours('-3'), 0.0)
        self.assertEqual(parse_hours('abc'), 0.0)
        self.assertEqual(parse_hours(float('nan')), 0.0)
        self.assertEqual(parse_hours(float('inf')), 0.0)
        self.assertEqual(parse_hours(None), 0.0)

    def test_parse_date_iso_and_offsets(self):
        self.assertEqual(parse_date('2025-03-15T10:30:00Z'), datetime(2025, 3, 15, 10, 30, tzinfo=timezone.utc))
        self.assertEqual(parse_date('2025-03-15T12:00:00+02:00'), datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc))

    def test_parse_date_excel_serial(self):
        # 45000 is 2023-03-15 in Excel's serial numbering
        self.assertEqual(parse_date(45000), datetime(2023, 3, 15, tzinfo=timezone.utc))

    def test_parse_date_datetime_passthrough(self):
        value = datetime(2025, 1, 2, 3, 4)
        self.assertEqual(parse_date(value), datetime(2025, 1, 2, 3, 4, tzinfo=timezone.utc))

    def test_parse_date_invalid(self):
        self.assertIsNone(parse_date('not a date'))
        self.assertIsNone(parse_date(''))
        self.assertIsNone(parse_date(None))

    def test_to_dict(self):
        story = normalize_story({'id': 'X', 'dueDate': '2025-03-15', 'status': 'Closed', 'priority': 'low'})
        data = story.to_dict()
        self.assertEqual(data['due_date'], '2025-03-15T00:00:00+00:00')
        self.assertEqual(data['status'], 'Closed')
        self.assertEqual(data['priority'], 'low')
        self.assertFalse(story.is_active)


if __name__ == '__main__':
    unittest.main()
