import unittest

from duesync.classifier import classify, extract_clock_time, is_assignment_title
from duesync.models import CalendarItem


class AssignmentDetectionTests(unittest.TestCase):
    def test_keywords_whole_word_case_insensitive(self) -> None:
        self.assertTrue(is_assignment_title("Unit 3 EXAM"))
        self.assertTrue(is_assignment_title("Homework: worksheet 4"))
        self.assertTrue(is_assignment_title("Submit permission slip"))
        self.assertTrue(is_assignment_title("Read pages 10-20"))
        self.assertFalse(is_assignment_title("Ready for the field trip"))
        self.assertFalse(is_assignment_title("Soccer practice"))
        self.assertFalse(is_assignment_title(""))
        self.assertFalse(is_assignment_title(None))

    def test_class_prefix_shape(self) -> None:
        self.assertTrue(is_assignment_title("ADV. BIOLOGY - B: Cell diagram"))
        self.assertTrue(is_assignment_title("AP US HISTORY - 2: Chapter notes"))
        self.assertTrue(is_assignment_title("SPANISH III/IV -3: Vocab list"))
        self.assertFalse(is_assignment_title("Lunch: pizza day"))
        self.assertFalse(is_assignment_title("Assembly - gym"))

    def test_clock_time_extraction(self) -> None:
        self.assertEqual(extract_clock_time("Essay due 9 PM"), "9 PM")
        self.assertEqual(extract_clock_time("Quiz 8:55 a.m. sharp"), "8:55 a.m.")
        self.assertEqual(extract_clock_time("Lab 10:30am, then 2pm"), "10:30am")
        self.assertIsNone(extract_clock_time("Quiz on chapter 4"))


class ClassifyTests(unittest.TestCase):
    def test_explicit_due_wins(self) -> None:
        item = CalendarItem(
            title="Lab due 9:15 am",
            start_raw="20240305T140000",
            start_time="Mar 5, 2024, 02:00:00 PM",
            due_raw="20240310T120000",
            due_time="Mar 10, 2024, 12:00:00 PM",
        )
        classified = classify(item)
        self.assertTrue(classified.is_assignment)
        self.assertEqual(classified.extracted_time, "9:15 am")
        self.assertEqual(classified.due_raw, "20240310T120000")
        self.assertEqual(classified.due_time, "Mar 10, 2024, 12:00:00 PM")
        self.assertFalse(classified.due_inferred)

    def test_due_inferred_from_start_and_title_time(self) -> None:
        item = CalendarItem(
            title="Lab due 9:15 am",
            start_raw="20240305T140000",
            start_time="Mar 5, 2024, 02:00:00 PM",
        )
        classified = classify(item)
        self.assertEqual(classified.due_raw, "20240305T140000")
        self.assertEqual(classified.due_time, "Mar 5, 2024, 09:15 AM")
        self.assertTrue(classified.due_inferred)

    def test_due_inferred_without_title_time_uses_start_display(self) -> None:
        item = CalendarItem(title="Chapter 2 quiz", start_raw="20240305", start_time="2024-03-05")
        classified = classify(item)
        self.assertEqual(classified.due_raw, "20240305")
        self.assertEqual(classified.due_time, "2024-03-05")
        self.assertIsNone(classified.extracted_time)

    def test_non_assignment_gets_no_due(self) -> None:
        item = CalendarItem(title="Pep rally 2 pm", start_raw="20240305", start_time="2024-03-05")
        classified = classify(item)
        self.assertFalse(classified.is_assignment)
        self.assertIsNone(classified.extracted_time)
        self.assertIsNone(classified.due_raw)
        self.assertIsNone(classified.due_time)

    def test_assignment_without_start_has_no_due(self) -> None:
        classified = classify(CalendarItem(title="Project proposal"))
        self.assertTrue(classified.is_assignment)
        self.assertIsNone(classified.due_raw)

    def test_does_not_mutate_input(self) -> None:
        item = CalendarItem(title="Exam 1", start_raw="20240305")
        classify(item)
        self.assertFalse(item.is_assignment)
        self.assertIsNone(item.due_raw)


if __name__ == "__main__":
    unittest.main()
