"""tools.* 族后端：天气、短链接与二维码。"""

import base64
import io
from urllib.parse import quote

import qrcode

from gateway_core.backends.base import HttpBackend, Outcome
from gateway_core.domain.exceptions import BackendError
from gateway_core.domain.models import OperationRequest


class WttrWeatherBackend(HttpBackend):
    name = "wttr"

    async def attempt(self, request: OperationRequest) -> Outcome:
        city = request.get("city")
        data = await self._request_json("GET", f"{self.base_url}/{quote(city, safe='')}", params={"format": "j1"})
        try:
            current = data["current_condition"][0]
            area = data["nearest_area"][0]
        except (KeyError, IndexError, TypeError):
            raise BackendError(code="MALFORMED_RESPONSE", message="wttr: missing current_condition")
        forecast = []
        for day in (data.get("weather") or [])[:3]:
            hourly = (day.get("hourly") or [{}])[0]
            astronomy = (day.get("astronomy") or [{}])[0]
            forecast.append({
                "date": day.get("date"),
                "max_temp_c": day.get("maxtempC"),
                "min_temp_c": day.get("mintempC"),
                "condition": ((hourly.get("weatherDesc") or [{}])[0]).get("value"),
                "chance_of_rain": hourly.get("chanceofrain"),
                "sunrise": astronomy.get("sunrise"),
                "sunset": astronomy.get("sunset"),
            })
        return self.result(
            location={
                "city": city,
                "country": ((area.get("country") or [{}])[0]).get("value"),
                "region": ((area.get("region") or [{}])[0]).get("value"),
                "latitude": area.get("latitude"),
                "longitude": area.get("longitude"),
            },
            current={
                "temp_c": current.get("temp_C"),
                "temp_f": current.get("temp_F"),
                "feels_like_c": current.get("FeelsLikeC"),
                "condition": ((current.get("weatherDesc") or [{}])[0]).get("value"),
                "humidity": current.get("humidity"),
                "wind_kmph": current.get("windspeedKmph"),
                "wind_direction": current.get("winddir16Point"),
                "pressure_mb": current.get("pressure"),
                "visibility_km": current.get("visibility"),
                "uv_index": current.get("uvIndex"),
                "cloud_cover": current.get("cloudcover"),
            },
            forecast=forecast,
        )


class TinyUrlBackend(HttpBackend):
    name = "tinyurl"

    async def attempt(self, request: OperationRequest) -> Outcome:
        url = request.get("url")
        resp = await self._request("GET", self.base_url, params={"url": url})
        short = resp.text.strip()
        if not short.startswith("http"):
            return self.fail(f"unexpected tinyurl body: {short[:80]}")
        return self.result(original_url=url, short_url=short)


class IsgdBackend(HttpBackend):
    name = "isgd"

    async def attempt(self, request: OperationRequest) -> Outcome:
        url = request.get("url")
        data = await self._request_json("GET", self.base_url, params={"format": "json", "url": url})
        if not isinstance(data, dict) or not data.get("shorturl"):
            return self.fail(str((data or {}).get("errormessage") or "is.gd returned no shorturl"))
        return self.result(original_url=url, short_url=data["shorturl"])


class QrCodeBackend(HttpBackend):
    """本地生成二维码 PNG（base64 data URL），不访问上游。"""

    name = "qrcode"
    border = 1

    async def attempt(self, request: OperationRequest) -> Outcome:
        text = request.get("text")
        size = int(request.get("size") or 300)
        dark = request.get("dark") or "#000000"
        light = request.get("light") or "#FFFFFF"

        qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, border=self.border)
        qr.add_data(text)
        qr.make(fit=True)
        qr.box_size = max(1, size // (qr.modules_count + 2 * self.border))
        try:
            img = qr.make_image(fill_color=dark, back_color=light)
        except ValueError as exc:
            raise BackendError(code="INVALID_COLOR", message=f"qrcode: {exc}")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        encoded = base64.b64encode(buf.getvalue()).decode("ascii")
        return self.result(
            qr_code=f"data:image/png;base64,{encoded}",
            text=text,
            format="base64",
            size=img.pixel_size,
        )
