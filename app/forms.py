from flask_wtf import FlaskForm
from wtforms import StringField
from wtforms.validators import DataRequired, AnyOf, Length, Optional

from app.errors import ValidationFailure


def _lower(value):
    return value.strip().lower() if isinstance(value, str) else value


class RegisterDeviceForm(FlaskForm):
    user_id = StringField('user_id', validators=[DataRequired(message='user_id is required'), Length(max=256)])
    device_type = StringField('device_type', filters=[_lower], validators=[
        DataRequired(message='device_type is required'),
        AnyOf(['parent', 'child'], message='device_type must be parent or child'),
    ])
    push_token = StringField('push_token', validators=[Optional()])
    family_id = StringField('family_id', validators=[Optional()])

class LinkDevicesForm(FlaskForm):
    parent_id = StringField('parent_id', validators=[DataRequired(message='parent_id is required')])
    child_id = StringField('child_id', validators=[DataRequired(message='child_id is required')])

class SendNotificationForm(FlaskForm):
    target_user_id = StringField('target_user_id', validators=[DataRequired(message='target_user_id is required')])
    title = StringField('title', validators=[DataRequired(message='title is required')])
    body = StringField('body', validators=[DataRequired(message='body is required')])
    type = StringField('type', validators=[Optional()])
    priority = StringField('priority', filters=[_lower], validators=[
        Optional(),
        AnyOf(['normal', 'high'], message='priority must be normal or high'),
    ])
    from_user_id = StringField('from_user_id', validators=[Optional()])

class ChildEventForm(FlaskForm):
    child_id = StringField('child_id', validators=[DataRequired(message='child_id is required')])

class ChildMessageForm(ChildEventForm):
    title = StringField('title', validators=[DataRequired(message='title is required')])
    body = StringField('body', validators=[DataRequired(message='body is required')])

class ChildAppForm(ChildEventForm):
    app_name = StringField('app_name', validators=[DataRequired(message='app_name is required')])
    package_name = StringField('package_name', validators=[Optional()])

class GeofenceForm(ChildEventForm):
    alert_type = StringField('alert_type', validators=[DataRequired(message='alert_type is required')])
    zone_name = StringField('zone_name', validators=[Optional()])

class ChildTaskForm(ChildEventForm):
    task_text = StringField('task_text', validators=[DataRequired(message='task_text is required')])

class ParentEventForm(FlaskForm):
    parent_id = StringField('parent_id', validators=[DataRequired(message='parent_id is required')])
    child_id = StringField('child_id', validators=[Optional()])

class LimitSetForm(ParentEventForm):
    limit_type = StringField('limit_type', validators=[DataRequired(message='limit_type is required')])

class AppBlockedForm(ParentEventForm):
    app_name = StringField('app_name', validators=[DataRequired(message='app_name is required')])

class TaskAssignedForm(ParentEventForm):
    task_text = StringField('task_text', validators=[DataRequired(message='task_text is required')])

class RemoteCommandForm(FlaskForm):
    parent_id = StringField('parent_id', validators=[DataRequired(message='parent_id is required')])
    child_id = StringField('child_id', validators=[DataRequired(message='child_id is required')])

class AppLimitForm(FlaskForm):
    app_name = StringField('app_name', validators=[DataRequired(message='app_name is required')])
    package_name = StringField('package_name', validators=[Optional()])

class PullLimitForm(FlaskForm):
    package_name = StringField('package_name', validators=[DataRequired(message='package_name is required')])


def validated(form_class):
    """Instantiate a form from the JSON body and raise ValidationFailure if invalid."""
    form = form_class()
    if not form.validate_on_submit():
        messages = [msg for errors in form.errors.values() for msg in errors]
        raise ValidationFailure(messages[0] if messages else 'Invalid request body')
    return form
