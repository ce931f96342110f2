"""Prompt templates for the three text-generation operations.

Templates use ``{placeholder}`` markers that are filled in one regex pass, so
braces inside user-supplied text (criteria, reports) pass through untouched.
"""

from __future__ import annotations

import re

from gradecenter.config import REPORT_LANGUAGE

SEARCH_CRITERIA_TEMPLATE = """\
You are an expert assistant specializing in university entrance exams.
Your task is to find the official scoring criteria for the following math essay exam: "{exam_info}".

Instructions:
1. Use your knowledge and search capabilities to find the most accurate and detailed scoring criteria for this specific exam.
2. If the official criteria are available, present them clearly.
3. If official criteria are not publicly available, synthesize a likely set of criteria based on the university's past exams, typical evaluation standards for math essays (logical rigor, problem comprehension, accuracy of calculations, clarity of explanation), and the topics likely covered in that year's exam.
4. Format the output as a clear, structured list that can be used directly as a scoring guide. Use markdown headings and bullet points.
5. The response must be in {language}.
6. The response should contain ONLY the scoring criteria text, without any conversational preamble or sign-off.
"""

STUDENT_INSTRUCTIONS_TEMPLATE = """\
- Student-Specific Instructions:
{instructions}
"""

GRADE_SOLUTION_TEMPLATE = """\
You are a math essay grading assistant, an expert in evaluating student math solutions against university-specific criteria. Analyze the provided information meticulously and write a detailed report in {language}.

# Provided Information:
- Student Name: {student_name}
- Exam Information: {exam_info}
- Scoring Criteria:
{scoring_criteria}
{student_instructions}
- Exam Materials (questions, etc.) are attached first.
- The student's solution documents are attached after the exam materials.

# Required Output Structure (Markdown):

## Total Score
- Give the final total score as a number (e.g., 85/100).

## Score by Criterion
- Break down the score for EACH item of the Scoring Criteria, as a table or a clear list.
- For each criterion, list the points awarded out of the possible points.
- Show the sum of these points; it must match the total score.

## Evaluation by Problem
- For each problem in the exam, create a section (e.g., "### Problem 1"):
  - **Strengths:** the strong points of the student's solution.
  - **Weaknesses:** the weak points and errors.
  - **Model Answer:** if the solution has significant errors or is largely incorrect, give a clear step-by-step model answer; otherwise state that the answer is correct.

## Overall Evaluation
- A detailed overall evaluation of the entire solution against the scoring criteria and general university expectations.

## Feedback for Improvement
- Specific, actionable feedback to help the student improve.

---
Use the Scoring Criteria above as the primary guide. Begin the analysis now, following the required structure precisely. The entire report must be in {language}.
"""

FORMAT_REPORT_TEMPLATE = """\
You are an expert web designer creating modern, dark-themed reports with Tailwind CSS. Convert the following raw evaluation report (Markdown) into a well-structured HTML fragment.

Instructions:
1. Use Tailwind CSS classes exclusively. No inline styles or <style> tags.
2. Output ONLY the HTML for the report content. No <html>, <head> or <body> tags; the fragment is embedded in a container with a dark background (bg-stone-900).
3. Each major section is a card: bg-stone-800/50 border border-stone-700 rounded-lg p-6 mb-6.
4. Palette: main text text-stone-300; headings text-sky-400 or text-fuchsia-500, subtitles text-stone-100. Do NOT use text-transparent gradients or bg-clip-text; they break printing.
   Strengths: bg-green-500/10 border border-green-700 rounded-md p-4 with text-green-400.
   Weaknesses: bg-red-500/10 border border-red-700 rounded-md p-4 with text-red-400.
5. Header card: student name, exam information and generation date.
6. Total score: large bold solid color, e.g. text-5xl font-bold text-fuchsia-500.
7. Score by criterion: a w-full text-left <table>; thead border-b border-stone-600; rows border-b border-stone-700 except the last; the total row is font-bold.
8. Evaluation by problem: one card per problem, styled <ul>/<li> lists for strengths and weaknesses.
9. Model answers: bg-stone-900 border border-stone-700 rounded-lg p-4 mt-4 with clean mathematical notation.
10. Typography: main headings text-2xl font-bold mb-4 text-stone-100, subheadings text-lg font-semibold mb-3 text-stone-200.

Report Generation Date: {generation_date}
Student Name: {student_name}
Exam Info: {exam_info}

Raw Text Report to Convert:
```
{raw_report}
```

Now generate the complete HTML for the report body, starting with the header section.
"""


_MARKER = re.compile(r"\{([a-z_]+)\}")


def _fill(template: str, **values: str) -> str:
    """Replace ``{key}`` markers in ``template`` in a single pass.

    Substituted text is never scanned again, and unknown markers are left
    as they are.
    """
    return _MARKER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def build_search_prompt(exam_info: str, language: str = REPORT_LANGUAGE) -> str:
    """Return the criteria-search prompt for ``exam_info``."""
    return _fill(SEARCH_CRITERIA_TEMPLATE, exam_info=exam_info, language=language)


def build_grading_prompt(
    student_name: str,
    exam_info: str,
    scoring_criteria: str,
    instructions: str = "",
    language: str = REPORT_LANGUAGE,
) -> str:
    """Return the grading prompt.

    The student-specific block is included only when ``instructions`` is not
    blank.
    """
    student_block = (
        _fill(STUDENT_INSTRUCTIONS_TEMPLATE, instructions=instructions.strip())
        if instructions and instructions.strip()
        else ""
    )
    return _fill(
        GRADE_SOLUTION_TEMPLATE,
        student_name=student_name,
        exam_info=exam_info,
        scoring_criteria=scoring_criteria,
        student_instructions=student_block,
        language=language,
    )


def build_format_prompt(
    raw_report: str, exam_info: str, student_name: str, generation_date: str
) -> str:
    """Return the HTML formatting prompt for a raw report."""
    return _fill(
        FORMAT_REPORT_TEMPLATE,
        generation_date=generation_date,
        student_name=student_name,
        exam_info=exam_info,
        raw_report=raw_report,
    )
