import asyncio

import pytest

from eduportal.core.constants import AttemptStateEnum, RedirectTargetEnum, SubmitTriggerEnum
from eduportal.core.exceptions import AttemptStateError
from eduportal.crud.attempt import attempt as crud_attempt
from eduportal.schemas.answer import FreeTextResponse, MultipleChoiceResponse, SubmitAnswersRequest
from eduportal.services.assessment import assessment_service
from eduportal.services.attempt_controller import AttemptController
from tests.helpers.factories import correct_option_id, make_assessment
from tests.helpers.fakes import FlakyApi, Recorder, wait_for


@pytest.fixture
def quiz(db, teacher):
    return make_assessment(db, teacher, duration_minutes=1)


def build_controller(api, assessment_id, recorder, **kwargs):
    kwargs.setdefault("tick_interval", 10.0)
    kwargs.setdefault("redirect_delay", 0)
    return AttemptController(
        api, assessment_id, confirm=recorder.confirm, notify=recorder.notify, redirect=recorder.redirect, **kwargs
    )


def submit_empty(db, assessment, student):
    attempt = assessment_service.start_attempt(db, assessment_id=assessment.id, current_user_context=student)
    assessment_service.submit_attempt(
        db, attempt_id=attempt.id, submission=SubmitAnswersRequest(answers=[]), current_user_context=student
    )
    return attempt


def answer_all(controller, questions):
    mcq, text = questions
    controller.set_answer(mcq.id, MultipleChoiceResponse(selected_option_id=correct_option_id(mcq)))
    controller.set_answer(text.id, FreeTextResponse(text="mitochondria powerhouse"))


class TestInitialization:
    @pytest.mark.asyncio
    async def test_initialize_starts_attempt_and_arms_timer(self, db, quiz, student, api_client_for):
        assessment, questions = quiz
        recorder = Recorder()
        async with api_client_for(student) as api:
            controller = build_controller(api, assessment.id, recorder)
            await controller.initialize()

            assert controller.state == AttemptStateEnum.ACTIVE
            assert [q.id for q in controller.questions] == [q.id for q in questions]
            assert controller.assessment.duration_minutes == 1
            assert controller.attempt.status == "in_progress"
            assert controller.remaining_seconds == 60
            assert controller.timer.running
            controller.close()
            assert not controller.timer.running

        assert crud_attempt.count_by_assessment(db, assessment.id) == 1

    @pytest.mark.asyncio
    async def test_repeated_initialize_never_starts_twice(self, db, quiz, student, api_client_for):
        assessment, _ = quiz
        async with api_client_for(student) as api:
            flaky = FlakyApi(api)
            controller = build_controller(flaky, assessment.id, Recorder())

            results = await asyncio.gather(controller.initialize(), controller.initialize(), return_exceptions=True)

            assert sum(isinstance(r, AttemptStateError) for r in results) == 1
            assert flaky.calls["start_attempt"] == 1
            with pytest.raises(AttemptStateError):
                await controller.initialize()
            controller.close()

        assert crud_attempt.count_by_assessment(db, assessment.id) == 1

    @pytest.mark.asyncio
    async def test_concurrent_controllers_create_one_attempt(self, db, quiz, student, api_client_for):
        assessment, _ = quiz
        first_recorder, second_recorder = Recorder(), Recorder()
        async with api_client_for(student) as api:
            first = build_controller(api, assessment.id, first_recorder)
            second = build_controller(api, assessment.id, second_recorder)
            await asyncio.gather(first.initialize(), second.initialize())

            states = sorted([first.state.value, second.state.value])
            assert states == [AttemptStateEnum.ACTIVE.value, AttemptStateEnum.REDIRECTED.value]
            first.close()
            second.close()

        assert crud_attempt.count_by_assessment(db, assessment.id) == 1
        redirects = first_recorder.redirects + second_recorder.redirects
        assert [target for target, _ in redirects] == [RedirectTargetEnum.COURSES]

    @pytest.mark.asyncio
    async def test_existing_attempt_redirects_to_courses_without_starting(self, db, quiz, student, api_client_for):
        assessment, _ = quiz
        existing = assessment_service.start_attempt(db, assessment_id=assessment.id, current_user_context=student)
        recorder = Recorder()
        async with api_client_for(student) as api:
            flaky = FlakyApi(api)
            controller = build_controller(flaky, assessment.id, recorder)
            await controller.initialize()

        assert controller.state == AttemptStateEnum.REDIRECTED
        assert flaky.calls["start_attempt"] == 0
        assert flaky.calls["get_questions"] == 0
        assert recorder.redirects == [(RedirectTargetEnum.COURSES, existing.id)]
        assert recorder.titles() == ["Assessment already started"]
        assert crud_attempt.count_by_assessment(db, assessment.id) == 1

    @pytest.mark.asyncio
    async def test_completed_attempt_without_results_redirects_to_courses(self, db, quiz, student, api_client_for):
        assessment, _ = quiz
        existing = submit_empty(db, assessment, student)
        recorder = Recorder()
        async with api_client_for(student) as api:
            await build_controller(api, assessment.id, recorder).initialize()

        assert recorder.redirects == [(RedirectTargetEnum.COURSES, existing.id)]
        assert recorder.titles() == ["Assessment already completed"]
        assert "once released" in recorder.notifications[0].message

    @pytest.mark.asyncio
    async def test_existing_attempt_with_released_results_redirects_to_results(self, db, teacher, student, api_client_for):
        assessment, _ = make_assessment(db, teacher, release=True)
        existing = submit_empty(db, assessment, student)
        recorder = Recorder()
        async with api_client_for(student) as api:
            await build_controller(api, assessment.id, recorder).initialize()

        assert recorder.redirects == [(RedirectTargetEnum.RESULTS, existing.id)]
        assert recorder.titles() == ["Assessment already completed"]

    @pytest.mark.asyncio
    async def test_in_progress_attempt_can_be_resumed(self, db, quiz, student, api_client_for):
        assessment, _ = quiz
        existing = assessment_service.start_attempt(db, assessment_id=assessment.id, current_user_context=student)
        async with api_client_for(student) as api:
            flaky = FlakyApi(api)
            controller = build_controller(flaky, assessment.id, Recorder(), resume_in_progress=True)
            await controller.initialize()

            assert controller.state == AttemptStateEnum.ACTIVE
            assert controller.attempt.id == existing.id
            assert flaky.calls["start_attempt"] == 0
            assert 0 < controller.remaining_seconds <= 60
            controller.close()

    @pytest.mark.asyncio
    async def test_load_failure_redirects_and_keeps_nothing(self, db, quiz, student, api_client_for):
        assessment, _ = quiz
        recorder = Recorder()
        async with api_client_for(student) as api:
            flaky = FlakyApi(api, failures={"get_questions": 1})
            controller = build_controller(flaky, assessment.id, recorder)
            await controller.initialize()

        assert controller.state == AttemptStateEnum.REDIRECTED
        assert controller.questions == []
        assert controller.assessment is None
        assert controller.timer is None
        assert recorder.redirects == [(RedirectTargetEnum.COURSES, None)]
        assert recorder.titles() == ["Failed to load assessment"]
        assert crud_attempt.count_by_assessment(db, assessment.id) == 0

    @pytest.mark.asyncio
    async def test_status_check_failure_redirects(self, quiz, student, api_client_for):
        assessment, _ = quiz
        recorder = Recorder()
        async with api_client_for(student) as api:
            flaky = FlakyApi(api, failures={"get_attempt_status": 1})
            await build_controller(flaky, assessment.id, recorder).initialize()

        assert recorder.redirects == [(RedirectTargetEnum.COURSES, None)]
        assert flaky.calls["start_attempt"] == 0

    @pytest.mark.asyncio
    async def test_redirect_waits_for_delay(self, quiz, student, api_client_for):
        assessment, _ = quiz
        recorder = Recorder()
        async with api_client_for(student) as api:
            flaky = FlakyApi(api, failures={"get_assessment": 1})
            controller = build_controller(flaky, assessment.id, recorder, redirect_delay=0.05)
            task = asyncio.create_task(controller.initialize())
            await wait_for(lambda: controller.state == AttemptStateEnum.REDIRECTED)
            assert recorder.redirects == []
            await task
        assert recorder.redirects == [(RedirectTargetEnum.COURSES, None)]

    @pytest.mark.asyncio
    async def test_close_during_load_makes_completion_a_no_op(self, quiz, student, api_client_for):
        assessment, _ = quiz
        recorder = Recorder()
        async with api_client_for(student) as api:
            flaky = FlakyApi(api, delays={"get_assessment": 0.02})
            controller = build_controller(flaky, assessment.id, recorder)
            task = asyncio.create_task(controller.initialize())
            await wait_for(lambda: flaky.calls["get_assessment"] == 1)
            controller.close()
            await task

        assert controller.state == AttemptStateEnum.LOADING
        assert controller.timer is None
        assert recorder.notifications == []
        assert recorder.redirects == []


class TestAnswering:
    @pytest.mark.asyncio
    async def test_answers_are_validated_against_questions(self, quiz, student, api_client_for):
        assessment, questions = quiz
        mcq, text = questions
        async with api_client_for(student) as api:
            controller = build_controller(api, assessment.id, Recorder())
            with pytest.raises(AttemptStateError):
                controller.set_answer(mcq.id, MultipleChoiceResponse(selected_option_id=correct_option_id(mcq)))

            await controller.initialize()
            with pytest.raises(ValueError):
                controller.set_answer(mcq.id, FreeTextResponse(text="Mitochondria"))
            with pytest.raises(ValueError):
                controller.set_answer(mcq.id, MultipleChoiceResponse(selected_option_id="not-an-option"))
            with pytest.raises(KeyError):
                controller.set_answer("unknown", FreeTextResponse(text="x"))

            controller.set_answer(text.id, FreeTextResponse(text=""))
            assert controller.get_answer(text.id).text == ""
            assert controller.unanswered_question_ids() == [mcq.id, text.id]
            controller.close()

    @pytest.mark.asyncio
    async def test_navigation_stays_in_bounds(self, quiz, student, api_client_for):
        assessment, questions = quiz
        async with api_client_for(student) as api:
            controller = build_controller(api, assessment.id, Recorder())
            await controller.initialize()

            assert controller.current_question.id == questions[0].id
            assert not controller.previous()
            assert controller.next()
            assert controller.is_last_question
            assert controller.progress == 100
            assert not controller.next()
            controller.go_to(0)
            assert controller.current_index == 0
            with pytest.raises(IndexError):
                controller.go_to(2)
            assert len(controller.store) == 0
            controller.close()


class TestSubmission:
    @pytest.mark.asyncio
    async def test_manual_submit_sends_one_answer_per_question(self, db, quiz, teacher, student, api_client_for):
        assessment, questions = quiz
        recorder = Recorder(confirm_answer=True)
        async with api_client_for(student) as api:
            controller = build_controller(api, assessment.id, recorder)
            await controller.initialize()
            controller.set_answer(questions[0].id, MultipleChoiceResponse(selected_option_id=correct_option_id(questions[0])))

            assert await controller.submit() is True

        assert recorder.confirm_calls == [[questions[1].id]]
        assert controller.state == AttemptStateEnum.SUBMITTED
        assert controller.result.status == "completed"
        assert len(controller.store) == 0
        assert controller.timer.cancelled
        assert "Assessment submitted" in recorder.titles()

        answers = assessment_service.get_attempt_answers(db, attempt_id=controller.attempt.id, current_user_context=teacher)
        assert [a.question_id for a in answers] == [q.id for q in questions]
        assert answers[0].is_correct is True
        assert answers[1].text_answer is None

    @pytest.mark.asyncio
    async def test_declined_confirmation_keeps_attempt_active(self, quiz, student, api_client_for):
        assessment, questions = quiz
        recorder = Recorder(confirm_answer=False)
        async with api_client_for(student) as api:
            flaky = FlakyApi(api)
            controller = build_controller(flaky, assessment.id, recorder)
            await controller.initialize()
            controller.set_answer(questions[1].id, FreeTextResponse(text="   "))

            assert await controller.submit() is False
            assert controller.state == AttemptStateEnum.ACTIVE
            assert recorder.confirm_calls == [[questions[0].id, questions[1].id]]
            assert flaky.calls["submit_answers"] == 0
            assert controller.get_answer(questions[1].id).text == "   "
            controller.close()

    @pytest.mark.asyncio
    async def test_fully_answered_submit_skips_confirmation(self, quiz, student, api_client_for):
        assessment, questions = quiz
        recorder = Recorder()
        async with api_client_for(student) as api:
            controller = build_controller(api, assessment.id, recorder)
            await controller.initialize()
            answer_all(controller, questions)
            assert await controller.submit() is True
        assert recorder.confirm_calls == []

    @pytest.mark.asyncio
    async def test_timeout_submits_without_confirmation(self, db, quiz, teacher, student, api_client_for):
        assessment, questions = quiz
        recorder = Recorder(confirm_answer=False)
        async with api_client_for(student) as api:
            controller = build_controller(api, assessment.id, recorder, tick_interval=0.001)
            await controller.initialize()
            controller.set_answer(questions[0].id, MultipleChoiceResponse(selected_option_id=correct_option_id(questions[0])))

            await wait_for(lambda: controller.state == AttemptStateEnum.SUBMITTED)

        assert recorder.confirm_calls == []
        assert controller.time_expired
        assert "Time's up!" in recorder.titles()
        answers = assessment_service.get_attempt_answers(db, attempt_id=controller.attempt.id, current_user_context=teacher)
        assert len(answers) == 2
        assert answers[1].text_answer is None
        assert answers[1].points_earned == 0

    @pytest.mark.asyncio
    async def test_expiry_during_manual_submit_submits_once(self, quiz, student, api_client_for):
        assessment, questions = quiz
        async with api_client_for(student) as api:
            flaky = FlakyApi(api, delays={"submit_answers": 0.5})
            controller = build_controller(flaky, assessment.id, Recorder(), tick_interval=0.001)
            await controller.initialize()
            answer_all(controller, questions)

            manual = asyncio.create_task(controller.submit())
            await wait_for(lambda: controller.timer.expired)
            assert await manual is True

        assert flaky.calls["submit_answers"] == 1
        assert controller.state == AttemptStateEnum.SUBMITTED

    @pytest.mark.asyncio
    async def test_double_submit_sends_once(self, quiz, student, api_client_for):
        assessment, questions = quiz
        async with api_client_for(student) as api:
            flaky = FlakyApi(api, delays={"submit_answers": 0.01})
            controller = build_controller(flaky, assessment.id, Recorder())
            await controller.initialize()
            answer_all(controller, questions)

            results = await asyncio.gather(controller.submit(), controller.submit())

        assert sorted(results) == [False, True]
        assert flaky.calls["submit_answers"] == 1
        # Submitted is terminal
        assert await controller.submit() is False
        with pytest.raises(AttemptStateError):
            controller.set_answer(questions[1].id, FreeTextResponse(text="late"))

    @pytest.mark.asyncio
    async def test_failed_submit_keeps_answers_for_manual_retry(self, quiz, student, api_client_for):
        assessment, questions = quiz
        recorder = Recorder()
        async with api_client_for(student) as api:
            flaky = FlakyApi(api, failures={"submit_answers": 1})
            controller = build_controller(flaky, assessment.id, recorder)
            await controller.initialize()
            answer_all(controller, questions)

            assert await controller.submit() is False
            assert controller.state == AttemptStateEnum.ACTIVE
            assert len(controller.store) == 2
            assert "Submission failed" in recorder.titles()
            await asyncio.sleep(0.01)
            assert flaky.calls["submit_answers"] == 1

            assert await controller.submit() is True
        assert flaky.calls["submit_answers"] == 2

    @pytest.mark.asyncio
    async def test_retry_after_failed_timeout_submit_does_not_confirm(self, quiz, student, api_client_for):
        assessment, questions = quiz
        recorder = Recorder(confirm_answer=False)
        async with api_client_for(student) as api:
            flaky = FlakyApi(api, failures={"submit_answers": 1})
            controller = build_controller(flaky, assessment.id, recorder, tick_interval=0.001)
            await controller.initialize()
            controller.set_answer(questions[0].id, MultipleChoiceResponse(selected_option_id=correct_option_id(questions[0])))

            await wait_for(lambda: "Submission failed" in recorder.titles())
            assert controller.state == AttemptStateEnum.ACTIVE
            assert controller.remaining_seconds == 0

            assert await controller.submit(SubmitTriggerEnum.MANUAL) is True
        assert recorder.confirm_calls == []

    @pytest.mark.asyncio
    async def test_answers_are_frozen_after_time_runs_out(self, db, quiz, teacher, student, api_client_for):
        assessment, questions = quiz
        recorder = Recorder()
        async with api_client_for(student) as api:
            flaky = FlakyApi(api, failures={"submit_answers": 1})
            controller = build_controller(flaky, assessment.id, recorder, tick_interval=0.001)
            await controller.initialize()
            controller.set_answer(questions[1].id, FreeTextResponse(text="written in time"))

            await wait_for(lambda: "Submission failed" in recorder.titles())
            assert controller.state == AttemptStateEnum.ACTIVE
            with pytest.raises(AttemptStateError):
                controller.set_answer(questions[1].id, FreeTextResponse(text="written after time ran out"))
            with pytest.raises(AttemptStateError):
                controller.set_answer(
                    questions[0].id, MultipleChoiceResponse(selected_option_id=correct_option_id(questions[0]))
                )

            assert await controller.submit() is True

        answers = assessment_service.get_attempt_answers(db, attempt_id=controller.attempt.id, current_user_context=teacher)
        assert answers[0].selected_option_id is None
        assert answers[1].text_answer == "written in time"

    @pytest.mark.asyncio
    async def test_close_during_submit_ignores_late_response(self, quiz, student, api_client_for):
        assessment, questions = quiz
        recorder = Recorder()
        async with api_client_for(student) as api:
            flaky = FlakyApi(api, delays={"submit_answers": 0.02})
            controller = build_controller(flaky, assessment.id, recorder)
            await controller.initialize()
            answer_all(controller, questions)

            task = asyncio.create_task(controller.submit())
            await wait_for(lambda: controller.state == AttemptStateEnum.SUBMITTING)
            controller.close()
            assert await task is False

        assert controller.state == AttemptStateEnum.SUBMITTING
        assert controller.result is None
        assert "Assessment submitted" not in recorder.titles()
