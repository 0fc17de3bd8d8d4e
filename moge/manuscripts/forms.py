from flask_wtf import FlaskForm
from wtforms import IntegerField, StringField, TextAreaField
from wtforms.validators import InputRequired, Length, NumberRange, Optional


class ManuscriptForm(FlaskForm):
    name = StringField("Manuscript name", validators=[InputRequired(), Length(max=150)])
    description = TextAreaField("Description", validators=[Optional(), Length(max=2000)])
    type = StringField("Type", validators=[Optional(), Length(max=50)])
    target_words = IntegerField("Target words", validators=[Optional(), NumberRange(min=0)])
    project_id = IntegerField("Project", validators=[Optional()])


class ManuscriptUpdateForm(FlaskForm):
    name = StringField("Manuscript name", validators=[Optional(), Length(max=150)])
    description = TextAreaField("Description", validators=[Optional(), Length(max=2000)])
    type = StringField("Type", validators=[Optional(), Length(max=50)])
    status = StringField("Status", validators=[Optional(), Length(max=20)])
    target_words = IntegerField("Target words", validators=[Optional(), NumberRange(min=0)])
    project_id = IntegerField("Project", validators=[Optional()])


class VolumeForm(FlaskForm):
    manuscript_id = IntegerField("Manuscript", validators=[InputRequired()])
    title = StringField("Volume title", validators=[InputRequired(), Length(max=150)])
    description = TextAreaField("Description", validators=[Optional(), Length(max=2000)])


class VolumeUpdateForm(FlaskForm):
    title = StringField("Volume title", validators=[Optional(), Length(max=150)])
    description = TextAreaField("Description", validators=[Optional(), Length(max=2000)])


class ChapterForm(FlaskForm):
    manuscript_id = IntegerField("Manuscript", validators=[Optional()])
    volume_id = IntegerField("Volume", validators=[Optional()])
    title = StringField("Chapter title", validators=[InputRequired(), Length(max=150)])


class ChapterUpdateForm(FlaskForm):
    title = StringField("Chapter title", validators=[InputRequired(), Length(max=150)])


class AssistForm(FlaskForm):
    text = TextAreaField("Passage", validators=[Optional()])
    custom_prompt = TextAreaField("Extra instruction", validators=[Optional(), Length(max=2000)])
