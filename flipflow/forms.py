from flask_wtf import FlaskForm
from wtforms import StringField, SubmitField, PasswordField, BooleanField, TextAreaField
from flask_wtf.file import FileField, FileAllowed, FileRequired
from wtforms.validators import DataRequired, Email, EqualTo, Length, Optional, Regexp
from flask_babel import lazy_gettext as _

HEX_COLOR = r'^#(?:[0-9a-fA-F]{3}){1,2}$'
CSS_COLOR = r'^(#(?:[0-9a-fA-F]{3}){1,2}|rgba?\(\s*\d{1,3}\s*,\s*\d{1,3}\s*,\s*\d{1,3}\s*(,\s*(0|1|0?\.\d+)\s*)?\))$'


class LoginForm(FlaskForm):
    email = StringField(_('Email'), validators=[DataRequired(), Email()],
                        render_kw={'placeholder': _('you@example.com')})
    password = PasswordField(_('Password'), validators=[DataRequired()])
    submit = SubmitField(_('Sign In'), render_kw={"class": "btn btn-primary"})


class RegistrationForm(FlaskForm):
    full_name = StringField(_('Full name'), validators=[Optional(), Length(max=120)])
    email = StringField(_('Email'), validators=[DataRequired(), Email()])
    password = PasswordField(_('Password'), validators=[
        DataRequired(), Length(min=6, message=_('Password must be at least 6 characters.'))])
    confirm_password = PasswordField(
        _('Confirm Password'),
        validators=[DataRequired(), EqualTo('password', message=_('Passwords must match.'))]
    )
    submit = SubmitField(_('Create Account'), render_kw={"class": "btn btn-primary"})


class FlipbookUploadForm(FlaskForm):
    title = StringField(_('Title'), validators=[DataRequired(), Length(max=200)])
    description = TextAreaField(_('Description'), validators=[Optional(), Length(max=2000)])
    is_public = BooleanField(_('Public'), default=True)
    pdf = FileField(_('PDF file'), validators=[
        FileRequired(_('Please choose a PDF file.')),
        FileAllowed(['pdf'], _('Please upload a valid PDF file'))])
    submit = SubmitField(_('Create Flipbook'), render_kw={"class": "btn btn-primary"})


class FlipbookEditForm(FlaskForm):
    title = StringField(_('Title'), validators=[DataRequired(), Length(max=200)])
    description = TextAreaField(_('Description'), validators=[Optional(), Length(max=2000)])
    is_public = BooleanField(_('Public'))
    background_color = StringField(_('Background color'), validators=[
        DataRequired(), Regexp(HEX_COLOR, message=_('Use a hex color such as #ffffff.'))])
    logo = FileField(_('Logo'), validators=[
        FileAllowed(['png', 'jpg', 'jpeg', 'gif', 'webp', 'svg'], _('Images only!'))])
    cover_image = FileField(_('Cover image'), validators=[
        FileAllowed(['png', 'jpg', 'jpeg', 'gif', 'webp', 'svg'], _('Images only!'))])
    show_covers = BooleanField(_('Show front and back covers'))
    cover_overlay_enabled = BooleanField(_('Show overlay on cover'))
    cover_overlay_text = StringField(_('Overlay text'), validators=[Optional(), Length(max=200)])
    cover_overlay_color = StringField(_('Overlay color'), validators=[
        DataRequired(), Regexp(CSS_COLOR, message=_('Use a hex or rgba() color.'))])
    cover_text_color = StringField(_('Overlay text color'), validators=[
        DataRequired(), Regexp(HEX_COLOR, message=_('Use a hex color such as #ffffff.'))])
    submit = SubmitField(_('Save Changes'), render_kw={"class": "btn btn-primary"})

    def updates(self):
        """Column values for the flipbook row; uploads are handled separately."""
        return {
            'title': self.title.data.strip(),
            'description': (self.description.data or '').strip() or None,
            'is_public': bool(self.is_public.data),
            'background_color': self.background_color.data,
            'show_covers': bool(self.show_covers.data),
            'cover_overlay_enabled': bool(self.cover_overlay_enabled.data),
            'cover_overlay_text': (self.cover_overlay_text.data or '').strip() or None,
            'cover_overlay_color': self.cover_overlay_color.data,
            'cover_text_color': self.cover_text_color.data,
        }
